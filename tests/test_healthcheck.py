from __future__ import annotations

from pathlib import Path

import pytest

from app.billing import config, healthcheck
from tests.test_workbook import _write_cid_workbook
from tests.test_api import _reload_main_module


def _write_input(path: Path) -> None:
    _write_cid_workbook(path, ["C1"])


def test_run_health_checks_happy_path(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(healthcheck, "is_online", lambda: True)
    _write_input(config.INPUT_FILE)

    result = healthcheck.run_health_checks(entrypoint="cli")
    assert result.ok is True
    assert result.checks["config"]["ok"] is True
    assert result.checks["filesystem"]["ok"] is True
    assert result.checks["input"]["ok"] is True
    assert result.checks["connectivity"]["ok"] is True


def test_run_health_checks_handles_invalid_config(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(healthcheck, "is_online", lambda: True)
    monkeypatch.setattr(config, "BATCH_SIZE", 0)
    _write_input(config.INPUT_FILE)

    result = healthcheck.run_health_checks(entrypoint="cli")
    assert result.ok is False
    assert result.checks["config"]["ok"] is False


def test_missing_input_is_unhealthy(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(healthcheck, "is_online", lambda: True)

    result = healthcheck.run_health_checks(entrypoint="cli")
    assert result.ok is False
    assert result.checks["input"]["ok"] is False


def test_connectivity_only_blocks_cli(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(healthcheck, "is_online", lambda: False)
    _write_input(config.INPUT_FILE)

    assert healthcheck.run_health_checks(entrypoint="api").ok is True
    assert healthcheck.run_health_checks(entrypoint="cli").ok is False


def test_health_api_reports_status(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(healthcheck, "is_online", lambda: True)

    main = _reload_main_module()
    client = main.app.test_client()

    resp_missing = client.get("/api/health")
    assert resp_missing.status_code == 503
    assert resp_missing.get_json()["checks"]["input"]["ok"] is False

    _write_input(config.INPUT_FILE)
    resp = client.get("/api/health")
    assert resp.status_code == 200
    payload = resp.get_json()
    assert payload["ok"] is True
    assert "filesystem" in payload["checks"]

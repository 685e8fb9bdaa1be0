from __future__ import annotations

import importlib
import sys
import threading
from typing import Dict, Optional

import pytest

from app.billing import config
from app.billing.engine import BillingEngine
from app.billing.errors import FetchError, FetchErrorKind
from app.billing.utils import load_json_file
from app.billing.workbook import read_result_table
from tests.test_scheduler import Behaviour, FakePortal, rows_for
from tests.test_workbook import _write_cid_workbook


def _reload_main_module():
    if "app.main" in sys.modules:
        del sys.modules["app.main"]
    return importlib.import_module("app.main")


def _fake_engine(
    behaviours: Optional[Dict[str, Behaviour]] = None,
    *,
    calls: Optional[list] = None,
    max_workers: int = 2,
) -> BillingEngine:
    return BillingEngine(
        portal_factory=lambda worker_id: FakePortal(behaviours, calls=calls),
        online_probe=lambda: True,
        max_workers=max_workers,
        batch_size=2,
        max_retries=2,
        retry_delay=0,
        inter_batch_delay=0,
        pause_poll_seconds=0.05,
    )


@pytest.fixture
def client_and_main(monkeypatch: pytest.MonkeyPatch):
    main = _reload_main_module()
    yield main.app.test_client(), main
    main.engine.shutdown()


def test_status_defaults(client_and_main) -> None:
    client, _ = client_and_main

    resp = client.get("/status")

    assert resp.status_code == 200
    assert resp.get_json() == {
        "processing_active": False,
        "active_workers": 0,
        "paused": False,
        "stopped": False,
        "last_processed": 0,
        "total_processed": 0,
        "total_failed": 0,
    }


@pytest.mark.parametrize("route", ["/pause", "/resume", "/stop"])
def test_control_routes_reject_idle_engine(client_and_main, route: str) -> None:
    client, _ = client_and_main

    resp = client.post(route)

    assert resp.status_code == 400
    assert "message" in resp.get_json()


def test_start_without_input_is_server_error(client_and_main) -> None:
    client, _ = client_and_main

    resp = client.post("/start")

    assert resp.status_code == 500
    assert "input file not found" in resp.get_json()["error"]


def test_start_rejects_invalid_config(client_and_main, monkeypatch: pytest.MonkeyPatch) -> None:
    client, _ = client_and_main
    monkeypatch.setattr(config, "BATCH_SIZE", 0)

    resp = client.post("/start")

    assert resp.status_code == 400
    assert "BATCH_SIZE" in resp.get_json()["error"]


def test_full_run_through_api(client_and_main, monkeypatch: pytest.MonkeyPatch) -> None:
    client, main = client_and_main
    _write_cid_workbook(config.INPUT_FILE, ["C1", "C2", "C3", "C4", "C5"])
    engine = _fake_engine(
        {
            "C1": rows_for({"Jan": 100.0}),
            "C4": FetchError(FetchErrorKind.EMPTY_RESULT, "No data rows found"),
        }
    )
    monkeypatch.setattr(main, "engine", engine)

    resp = client.post("/start", json={"workers": 2})
    assert resp.status_code == 200
    assert resp.get_json() == {"message": "Processing started with 2 workers", "workers": 2}

    engine.wait(poll_seconds=0.1)

    status = client.get("/status").get_json()
    assert status["processing_active"] is False
    assert status["active_workers"] == 0
    assert status["last_processed"] == 5
    assert status["total_processed"] == 4
    assert status["total_failed"] == 1

    engine.writer.shutdown()
    results = read_result_table(config.OUTPUT_FILE)
    assert set(results) == {"C1", "C2", "C3", "C5"}
    assert results["C1"] == {"Jan": 100.0}
    assert load_json_file(config.FAILED_FILE) == ["C4"]
    assert load_json_file(config.STATUS_FILE)["last_processed"] == 5


def test_start_clamps_requested_workers(client_and_main, monkeypatch: pytest.MonkeyPatch) -> None:
    client, main = client_and_main
    _write_cid_workbook(config.INPUT_FILE, ["C1"])
    engine = _fake_engine(max_workers=2)
    monkeypatch.setattr(main, "engine", engine)

    resp = client.post("/start", json={"workers": 9})
    engine.wait(poll_seconds=0.1)

    assert resp.get_json()["workers"] == 2


def test_pause_resume_stop_and_double_start(client_and_main, monkeypatch: pytest.MonkeyPatch) -> None:
    client, main = client_and_main
    _write_cid_workbook(config.INPUT_FILE, [f"C{i}" for i in range(1, 9)])
    release = threading.Event()
    entered = threading.Event()

    def _slow(cid: str):
        entered.set()
        release.wait(5)
        return rows_for({"Jan": 1.0})

    engine = _fake_engine({"C1": _slow}, max_workers=1)
    monkeypatch.setattr(main, "engine", engine)

    assert client.post("/start").status_code == 200
    assert entered.wait(5)

    second = client.post("/start")
    assert second.status_code == 400
    assert second.get_json() == {"error": "Processing is already running"}

    assert client.post("/pause").status_code == 200
    assert client.post("/pause").status_code == 200
    status = client.get("/status").get_json()
    assert status["processing_active"] is True
    assert status["paused"] is True

    release.set()
    assert client.post("/resume").status_code == 200
    assert client.get("/status").get_json()["paused"] is False

    resp = client.post("/stop")
    assert resp.status_code == 200
    assert resp.get_json() == {"message": "Processing stopped"}

    status = client.get("/status").get_json()
    assert status["processing_active"] is False
    assert status["active_workers"] == 0
    assert status["stopped"] is True
    assert status["last_processed"] >= 1
    assert engine.store.has_result("C1")

    assert client.post("/stop").status_code == 400


def test_restart_after_stop_resumes_from_cursor(client_and_main, monkeypatch: pytest.MonkeyPatch) -> None:
    client, main = client_and_main
    _write_cid_workbook(config.INPUT_FILE, ["C1", "C2", "C3", "C4"])
    calls: list = []
    stop_after_first = threading.Event()

    def _first(cid: str):
        stop_after_first.set()
        return rows_for({"Jan": 1.0})

    engine = _fake_engine({"C1": _first}, calls=calls, max_workers=1)
    monkeypatch.setattr(main, "engine", engine)
    client.post("/start")
    assert stop_after_first.wait(5)
    client.post("/stop")
    first_cursor = engine.tracker.state.cursor

    assert client.post("/start").status_code == 200
    engine.wait(poll_seconds=0.1)

    assert engine.tracker.state.cursor == 4
    assert sorted(calls) == ["C1", "C2", "C3", "C4"]
    assert first_cursor >= 1

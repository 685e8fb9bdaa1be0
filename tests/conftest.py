from __future__ import annotations

from pathlib import Path

import pytest

from app.billing import config, utils


def configure_temp_paths(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    data_dir = tmp_path / "data"
    data_dir.mkdir(parents=True, exist_ok=True)

    monkeypatch.setattr(config, "DATA_DIR", data_dir)
    monkeypatch.setattr(config, "LOG_DIR", data_dir / "logs")
    monkeypatch.setattr(config, "LOG_FILE", data_dir / "logs" / "latest.log")
    monkeypatch.setattr(config, "INPUT_FILE", data_dir / "input" / "cids.xlsx")
    monkeypatch.setattr(config, "OUTPUT_FILE", data_dir / "output" / "results.xlsx")
    monkeypatch.setattr(config, "FAILED_FILE", data_dir / "failed" / "failed.json")
    monkeypatch.setattr(config, "STATUS_FILE", data_dir / "status.json")
    monkeypatch.setattr(utils, "_LOGGER_INITIALISED", False)
    return data_dir


@pytest.fixture(autouse=True)
def _isolated_data_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    return configure_temp_paths(tmp_path, monkeypatch)

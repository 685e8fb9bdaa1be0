from __future__ import annotations

from pathlib import Path
from typing import List

import pytest

from app.billing import record_store
from app.billing.record_store import RecordStore
from app.billing.utils import load_json_file
from app.billing.workbook import read_result_table


def _store(tmp_path: Path) -> RecordStore:
    return RecordStore(tmp_path / "output" / "results.xlsx", tmp_path / "failed" / "failed.json")


def test_load_without_files_is_empty(tmp_path: Path) -> None:
    store = _store(tmp_path)

    results, failures = store.load()

    assert results == {}
    assert failures == set()
    assert not store.contains("C1")


def test_corrupt_files_fall_back_to_empty(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    lines: List[str] = []
    monkeypatch.setattr(record_store, "log_line", lambda msg: lines.append(msg))
    store = _store(tmp_path)
    store.results_path.parent.mkdir(parents=True)
    store.results_path.write_bytes(b"not a workbook")
    store.failures_path.parent.mkdir(parents=True)
    store.failures_path.write_text("{broken", encoding="utf-8")

    results, failures = store.load()

    assert results == {}
    assert failures == set()
    assert any(line.startswith("[STORE][WARN] Couldn't read result table") for line in lines)
    assert any(line.startswith("[STORE][WARN] Couldn't read failure list") for line in lines)


def test_failure_list_must_be_an_array(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.failures_path.parent.mkdir(parents=True)
    store.failures_path.write_text('{"C1": true}', encoding="utf-8")

    _, failures = store.load()

    assert failures == set()


def test_merge_persists_both_artifacts(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.load()

    assert store.merge({"C1": {"Jan": 10.0}}, {"C3", "C2"}) is True

    assert read_result_table(store.results_path) == {"C1": {"Jan": 10.0}}
    assert load_json_file(store.failures_path) == ["C2", "C3"]
    assert store.contains("C2")
    assert store.has_result("C1")
    assert not store.has_result("C2")


def test_merge_never_replaces_existing_rows(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.load()
    store.merge({"C1": {"Jan": 10.0}}, set())

    store.merge({"C1": {"Jan": 99.0}, "C2": {"Feb": 5.0}}, set())

    assert store.results == {"C1": {"Jan": 10.0}, "C2": {"Feb": 5.0}}
    assert read_result_table(store.results_path) == store.results


def test_merge_unions_with_previous_run(tmp_path: Path) -> None:
    first = _store(tmp_path)
    first.load()
    first.merge({"C1": {"Jan": 1.0}}, {"C2"})

    second = _store(tmp_path)
    second.load()
    second.merge({"C3": {"Feb": 2.0}}, {"C4"})

    assert set(read_result_table(second.results_path)) == {"C1", "C3"}
    assert load_json_file(second.failures_path) == ["C2", "C4"]


def test_success_purges_earlier_failure(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.load()
    store.merge({}, {"C1", "C2"})

    store.merge({"C1": {"Jan": 3.0}}, set())

    assert store.failures == {"C2"}
    assert load_json_file(store.failures_path) == ["C2"]


def test_write_failure_is_logged_not_raised(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    lines: List[str] = []
    monkeypatch.setattr(record_store, "log_line", lambda msg: lines.append(msg))

    def _broken_write(path, results):
        raise PermissionError("read-only volume")

    monkeypatch.setattr(record_store, "write_result_table", _broken_write)
    store = _store(tmp_path)
    store.load()

    assert store.merge({"C1": {"Jan": 1.0}}, {"C2"}) is False

    assert store.has_result("C1")
    assert load_json_file(store.failures_path) == ["C2"]
    assert any("[STORE][WARN] Error saving result table" in line for line in lines)


def test_returned_collections_are_copies(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.load()
    store.merge({"C1": {"Jan": 1.0}}, {"C2"})

    store.results["C1"]["Jan"] = 50.0
    store.failures.add("C9")

    assert store.results == {"C1": {"Jan": 1.0}}
    assert store.failures == {"C2"}

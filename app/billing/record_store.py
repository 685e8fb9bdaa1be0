"""Accumulated results and failures, persisted as a workbook and a JSON list."""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Dict, Iterable, Mapping, Set, Tuple

from .errors import PersistenceError, PersistenceErrorKind
from .logging_utils import _engine_event
from .utils import atomic_write_text, load_json_file, log_line
from .workbook import RecordData, normalize_cid, read_result_table, write_result_table

ResultSet = Dict[str, RecordData]
FailureSet = Set[str]


class RecordStore:
    """Own the ResultSet and FailureSet and the two files that persist them.

    The in-memory collections are authoritative. Every :meth:`merge` rewrites
    both files in full; a failed write is logged and retried implicitly by
    the next merge.
    """

    def __init__(self, results_path: Path, failures_path: Path) -> None:
        self.results_path = Path(results_path)
        self.failures_path = Path(failures_path)
        self._results: ResultSet = {}
        self._failures: FailureSet = set()
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _read_results(self) -> ResultSet:
        if not self.results_path.exists():
            return {}
        try:
            return read_result_table(self.results_path)
        except Exception as exc:  # noqa: BLE001
            raise PersistenceError(
                PersistenceErrorKind.PARSE_FAILED, str(self.results_path), str(exc)
            ) from exc

    def _read_failures(self) -> FailureSet:
        if not self.failures_path.exists():
            return set()
        try:
            payload = load_json_file(self.failures_path)
        except OSError as exc:
            raise PersistenceError(
                PersistenceErrorKind.READ_FAILED, str(self.failures_path), str(exc)
            ) from exc
        except ValueError as exc:
            raise PersistenceError(
                PersistenceErrorKind.PARSE_FAILED, str(self.failures_path), str(exc)
            ) from exc
        if not isinstance(payload, list):
            raise PersistenceError(
                PersistenceErrorKind.PARSE_FAILED,
                str(self.failures_path),
                "expected a JSON array of CIDs",
            )
        return {cid for cid in (normalize_cid(item) for item in payload) if cid}

    def load(self) -> Tuple[ResultSet, FailureSet]:
        """Load persisted state, falling back to empty collections."""

        try:
            results = self._read_results()
        except PersistenceError as exc:
            log_line(f"[STORE][WARN] Couldn't read result table: {exc}")
            _engine_event("error", phase="store_load", error=exc.kind.value, path=exc.path)
            results = {}

        try:
            failures = self._read_failures()
        except PersistenceError as exc:
            log_line(f"[STORE][WARN] Couldn't read failure list: {exc}")
            _engine_event("error", phase="store_load", error=exc.kind.value, path=exc.path)
            failures = set()

        with self._lock:
            self._results = dict(results)
            self._failures = set(failures)
        _engine_event("state", phase="store_load", results=len(results), failures=len(failures))
        return dict(results), set(failures)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def contains(self, cid: str) -> bool:
        with self._lock:
            return cid in self._results or cid in self._failures

    def has_result(self, cid: str) -> bool:
        with self._lock:
            return cid in self._results

    @property
    def results(self) -> ResultSet:
        with self._lock:
            return {cid: dict(record) for cid, record in self._results.items()}

    @property
    def failures(self) -> FailureSet:
        with self._lock:
            return set(self._failures)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def merge(self, new_entries: Mapping[str, RecordData], new_failures: Iterable[str]) -> bool:
        """Merge a batch into memory and rewrite both artifacts.

        Existing result rows are never replaced. Failure ids are unioned in
        and any id that now has a result is dropped from the failure list.
        Returns ``True`` when both files were written.
        """

        with self._lock:
            added = 0
            for cid, record in new_entries.items():
                if cid in self._results:
                    continue
                self._results[cid] = dict(record)
                added += 1
            self._failures.update(new_failures)
            purged = {cid for cid in self._failures if cid in self._results}
            self._failures -= purged
            results_snapshot = dict(self._results)
            failures_snapshot = sorted(self._failures)

        ok = self._write(results_snapshot, failures_snapshot)
        _engine_event(
            "state",
            phase="store_merge",
            added=added,
            purged_failures=len(purged),
            results=len(results_snapshot),
            failures=len(failures_snapshot),
            persisted=ok,
        )
        return ok

    def _write(self, results: ResultSet, failures: list[str]) -> bool:
        ok = True
        try:
            write_result_table(self.results_path, results)
        except Exception as exc:  # noqa: BLE001
            ok = False
            error = PersistenceError(
                PersistenceErrorKind.WRITE_FAILED, str(self.results_path), str(exc)
            )
            log_line(f"[STORE][WARN] Error saving result table: {error}")

        try:
            atomic_write_text(self.failures_path, json.dumps(failures, indent=4))
        except OSError as exc:
            ok = False
            error = PersistenceError(
                PersistenceErrorKind.WRITE_FAILED, str(self.failures_path), str(exc)
            )
            log_line(f"[STORE][WARN] Error saving failure list: {error}")
        return ok


__all__ = ["RecordStore", "ResultSet", "FailureSet"]

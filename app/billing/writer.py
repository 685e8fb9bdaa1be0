from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from threading import Lock
from typing import Dict, Optional, Set

from .logging_utils import _engine_event
from .progress import ProgressState, ProgressTracker
from .record_store import RecordStore
from .workbook import RecordData


@dataclass
class BatchResult:
    """What one worker did with one claimed slice ``[start, end)``.

    ``upto`` is the index of the first CID that was not attempted; it equals
    ``end`` unless the batch was interrupted by a stop.
    """

    worker_id: int
    start: int
    end: int
    upto: int
    entries: Dict[str, RecordData] = field(default_factory=dict)
    failures: Set[str] = field(default_factory=set)
    skipped: int = 0
    interrupted: bool = False

    @property
    def succeeded(self) -> int:
        return len(self.entries)

    @property
    def failed(self) -> int:
        return len(self.failures)


class PersistenceWriter:
    """
    Single owner of every write to the Record Store and Progress Tracker.

    Workers hand finished batches to :meth:`commit`; a one-thread executor
    applies them strictly one after another, so a merge and the matching
    cursor advance are never interleaved with another worker's.
    """

    def __init__(self, store: RecordStore, tracker: ProgressTracker) -> None:
        self.store = store
        self.tracker = tracker
        self._executor: Optional[ThreadPoolExecutor] = None
        self._lock = Lock()
        self._committed = 0

    def _ensure_executor(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="persist")
            return self._executor

    def _apply(self, result: BatchResult) -> ProgressState:
        self.store.merge(result.entries, result.failures)
        state = self.tracker.advance(
            result.upto,
            result.succeeded,
            result.failed,
            start=result.start,
        )
        with self._lock:
            self._committed += 1
        _engine_event(
            "state",
            phase="batch_commit",
            worker_id=result.worker_id,
            start=result.start,
            end=result.end,
            upto=result.upto,
            succeeded=result.succeeded,
            failed=result.failed,
            skipped=result.skipped,
            interrupted=result.interrupted,
            cursor=state.cursor,
        )
        return state

    def commit(self, result: BatchResult) -> "Future[ProgressState]":
        """Queue ``result`` for persistence and return its future."""

        return self._ensure_executor().submit(self._apply, result)

    @property
    def committed(self) -> int:
        with self._lock:
            return self._committed

    def shutdown(self) -> None:
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)


__all__ = ["BatchResult", "PersistenceWriter"]

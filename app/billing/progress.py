"""Durable cursor over the CID list plus aggregate counters."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .errors import PersistenceError, PersistenceErrorKind
from .logging_utils import _engine_event
from .utils import load_json_file, log_line, save_json_file


@dataclass(frozen=True)
class ProgressState:
    cursor: int = 0
    total_succeeded: int = 0
    total_failed: int = 0

    def to_status(self) -> Dict[str, int]:
        """Return the status-file representation."""

        return {
            "last_processed": self.cursor,
            "total_processed": self.total_succeeded,
            "total_failed": self.total_failed,
        }

    @classmethod
    def from_status(cls, payload: Any) -> "ProgressState":
        if not isinstance(payload, dict):
            raise ValueError("status payload must be a JSON object")

        def _count(key: str) -> int:
            try:
                return max(0, int(payload.get(key) or 0))
            except (TypeError, ValueError):
                return 0

        return cls(
            cursor=_count("last_processed"),
            total_succeeded=_count("total_processed"),
            total_failed=_count("total_failed"),
        )


class ProgressTracker:
    """Persist and hand out progress over the ordered CID list.

    Workers :meth:`claim` slices of the list and report them back through
    :meth:`advance`. The durable cursor only moves across contiguous
    completed slices, so it always marks the index below which every CID
    was attempted or skipped.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._state = ProgressState()
        self._lock = threading.Lock()
        self._next_claim = 0
        self._claims: Dict[int, int] = {}
        self._completed: Dict[int, int] = {}
        self._returned: List[Tuple[int, int]] = []

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _read(self) -> ProgressState:
        if not self.path.exists():
            return ProgressState()
        try:
            payload = load_json_file(self.path)
        except OSError as exc:
            raise PersistenceError(PersistenceErrorKind.READ_FAILED, str(self.path), str(exc)) from exc
        except ValueError as exc:
            raise PersistenceError(PersistenceErrorKind.PARSE_FAILED, str(self.path), str(exc)) from exc
        try:
            return ProgressState.from_status(payload)
        except ValueError as exc:
            raise PersistenceError(PersistenceErrorKind.PARSE_FAILED, str(self.path), str(exc)) from exc

    def load(self) -> ProgressState:
        """Load the persisted state, defaulting to zeros."""

        try:
            state = self._read()
        except PersistenceError as exc:
            log_line(f"[PROGRESS][WARN] Couldn't read status file: {exc}")
            state = ProgressState()

        with self._lock:
            self._state = state
            self._next_claim = state.cursor
            self._claims.clear()
            self._completed.clear()
            self._returned.clear()
        _engine_event("state", phase="progress_load", **state.to_status())
        return state

    def save(self) -> bool:
        """Persist the current state; failures are logged and reported."""

        with self._lock:
            payload = self._state.to_status()
        try:
            save_json_file(self.path, payload, indent=None)
        except OSError as exc:
            error = PersistenceError(PersistenceErrorKind.WRITE_FAILED, str(self.path), str(exc))
            log_line(f"[PROGRESS][WARN] Couldn't save status file: {error}")
            return False
        return True

    @property
    def state(self) -> ProgressState:
        with self._lock:
            return self._state

    # ------------------------------------------------------------------
    # Work partitioning
    # ------------------------------------------------------------------

    def claim(self, batch_size: int, total: int) -> Optional[Tuple[int, int]]:
        """Reserve the next ``[start, end)`` slice, or ``None`` when exhausted."""

        size = max(1, int(batch_size))
        with self._lock:
            while self._returned:
                start, end = self._returned.pop(0)
                end = min(end, total)
                if start < end:
                    self._claims[start] = end
                    return start, end

            start = max(self._next_claim, self._state.cursor)
            if start >= total:
                return None
            end = min(start + size, total)
            self._next_claim = end
            self._claims[start] = end
            return start, end

    def advance(
        self,
        new_cursor: int,
        succeeded_delta: int = 0,
        failed_delta: int = 0,
        *,
        start: Optional[int] = None,
    ) -> ProgressState:
        """Record progress and persist it.

        Without ``start`` the cursor moves straight to ``new_cursor`` (never
        backwards). With ``start`` the slice ``[start, new_cursor)`` is
        marked complete; any claimed tail beyond ``new_cursor`` goes back to
        the claim pool, and the cursor advances across every contiguous
        completed slice.
        """

        new_cursor = int(new_cursor)
        with self._lock:
            cursor = self._state.cursor
            if start is None:
                cursor = max(cursor, new_cursor)
            else:
                claimed_end = self._claims.pop(start, new_cursor)
                if new_cursor < claimed_end:
                    self._returned.append((new_cursor, claimed_end))
                    self._returned.sort()
                if new_cursor > start:
                    self._completed[start] = max(self._completed.get(start, start), new_cursor)
                while cursor in self._completed:
                    cursor = max(cursor, self._completed.pop(cursor))
                for stale in [s for s, e in self._completed.items() if e <= cursor]:
                    del self._completed[stale]

            self._state = ProgressState(
                cursor=cursor,
                total_succeeded=self._state.total_succeeded + max(0, int(succeeded_delta)),
                total_failed=self._state.total_failed + max(0, int(failed_delta)),
            )
            state = self._state

        self.save()
        _engine_event("state", phase="progress_advance", **state.to_status())
        return state


__all__ = ["ProgressState", "ProgressTracker"]

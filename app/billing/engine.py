"""Wiring of control, stores, writer and worker pool behind one object."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from . import config
from .connectivity import OnlineProbe
from .control import RunControl, RunPhase
from .errors import ControlError, PersistenceError, PersistenceErrorKind
from .logging_utils import _engine_event
from .pool import PortalFactory, WorkerPool
from .portal import make_portal
from .progress import ProgressTracker
from .record_store import RecordStore
from .utils import ensure_dirs, log_line
from .workbook import read_cid_list
from .writer import PersistenceWriter


class BillingEngine:
    """Process-wide harvesting engine used by the HTTP API and the CLI."""

    def __init__(
        self,
        *,
        input_path: Optional[Path] = None,
        output_path: Optional[Path] = None,
        failed_path: Optional[Path] = None,
        status_path: Optional[Path] = None,
        portal_factory: PortalFactory = make_portal,
        online_probe: Optional[OnlineProbe] = None,
        max_workers: Optional[int] = None,
        batch_size: Optional[int] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        inter_batch_delay: Optional[float] = None,
        online_poll_seconds: Optional[float] = None,
        pause_poll_seconds: Optional[float] = None,
    ) -> None:
        self.input_path = Path(input_path or config.INPUT_FILE)
        self.max_workers = max_workers
        self.control = RunControl(pause_poll_seconds=pause_poll_seconds)
        self.store = RecordStore(
            output_path or config.OUTPUT_FILE,
            failed_path or config.FAILED_FILE,
        )
        self.tracker = ProgressTracker(status_path or config.STATUS_FILE)
        self.writer = PersistenceWriter(self.store, self.tracker)
        self.pool = WorkerPool(
            control=self.control,
            store=self.store,
            tracker=self.tracker,
            writer=self.writer,
            portal_factory=portal_factory,
            online_probe=online_probe,
            batch_size=batch_size,
            max_retries=max_retries,
            retry_delay=retry_delay,
            inter_batch_delay=inter_batch_delay,
            online_poll_seconds=online_poll_seconds,
        )
        self._lock = threading.Lock()
        self.cids: List[str] = []
        self.tracker.load()

    def _worker_count(self, requested: Optional[int]) -> int:
        ceiling = max(1, self.max_workers or config.MAX_WORKERS)
        if requested is None:
            return ceiling
        return max(1, min(int(requested), ceiling))

    def load_cids(self) -> List[str]:
        try:
            cids = read_cid_list(self.input_path)
        except FileNotFoundError as exc:
            raise PersistenceError(
                PersistenceErrorKind.READ_FAILED, str(self.input_path), "input file not found"
            ) from exc
        except Exception as exc:  # noqa: BLE001
            raise PersistenceError(
                PersistenceErrorKind.PARSE_FAILED, str(self.input_path), str(exc)
            ) from exc
        log_line(f"[ENGINE] Loaded {len(cids)} CIDs from {self.input_path}")
        return cids

    # ------------------------------------------------------------------
    # Control operations
    # ------------------------------------------------------------------

    def start(self, workers: Optional[int] = None) -> int:
        """Load persisted state and launch the workers; return their count."""

        with self._lock:
            if self.control.phase not in {RunPhase.IDLE, RunPhase.STOPPED}:
                raise ControlError("Processing is already running")

            ensure_dirs()
            count = self._worker_count(workers)
            cids = self.load_cids()
            self.store.load()
            state = self.tracker.load()
            if not self.tracker.path.exists():
                self.tracker.save()

            self.cids = cids
            self.control.start(count)
            _engine_event(
                "state",
                phase="run_start",
                workers=count,
                total=len(cids),
                cursor=state.cursor,
            )
            self.pool.start(count, cids)
            return count

    def pause(self) -> None:
        self.control.pause()

    def resume(self) -> None:
        self.control.resume()

    def request_stop(self) -> None:
        """Raise the stop flag without waiting for the workers."""

        self.control.request_stop()

    def stop(self, timeout: Optional[float] = None) -> bool:
        """Raise the stop flag and block until every worker has drained."""

        self.control.request_stop()
        log_line("[ENGINE] Stop requested; waiting for workers to drain")
        drained = self.pool.join(timeout) and self.control.wait_drained(timeout)
        _engine_event("state", phase="run_stop", drained=drained)
        return drained

    def wait(self, poll_seconds: float = 1.0) -> None:
        """Block until the current run has no active workers."""

        while not self.control.wait_drained(poll_seconds):
            continue
        self.pool.join()

    def shutdown(self) -> None:
        """Stop any active run and release the writer thread."""

        if self.control.is_active():
            self.stop()
        self.writer.shutdown()

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def status(self) -> Dict[str, Any]:
        snapshot = self.control.snapshot()
        progress = self.tracker.state.to_status()
        return {
            "processing_active": snapshot.processing_active,
            "active_workers": snapshot.active_workers,
            "paused": snapshot.paused,
            "stopped": snapshot.stopping,
            **progress,
        }


__all__ = ["BillingEngine"]

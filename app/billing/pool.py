from __future__ import annotations

import threading
from typing import Callable, List, Optional, Sequence

from .control import RunControl
from .fetch_client import FetchClient
from .connectivity import OnlineProbe
from .logging_utils import _engine_event
from .portal import Portal, make_portal
from .progress import ProgressTracker
from .record_store import RecordStore
from .scheduler import BatchScheduler
from .utils import log_line
from .writer import PersistenceWriter

PortalFactory = Callable[[int], Portal]


class WorkerPool:
    """
    Launch and join worker threads.

    Each worker builds its own portal (its own browser) and runs a
    :class:`BatchScheduler` loop. The Record Store, Progress Tracker and
    persistence writer are shared; the pool itself only keeps thread handles.
    """

    def __init__(
        self,
        *,
        control: RunControl,
        store: RecordStore,
        tracker: ProgressTracker,
        writer: PersistenceWriter,
        portal_factory: PortalFactory = make_portal,
        online_probe: Optional[OnlineProbe] = None,
        batch_size: Optional[int] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        inter_batch_delay: Optional[float] = None,
        online_poll_seconds: Optional[float] = None,
    ) -> None:
        self.control = control
        self.store = store
        self.tracker = tracker
        self.writer = writer
        self.portal_factory = portal_factory
        self.online_probe = online_probe
        self.batch_size = batch_size
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.inter_batch_delay = inter_batch_delay
        self.online_poll_seconds = online_poll_seconds
        self._threads: List[threading.Thread] = []
        self._lock = threading.Lock()

    def _worker(self, worker_id: int, cids: Sequence[str]) -> None:
        portal: Optional[Portal] = None
        try:
            try:
                portal = self.portal_factory(worker_id)
            except Exception as exc:  # noqa: BLE001
                log_line(f"[WORKER {worker_id}][WARN] Setup failed, slot lost for this run: {exc}")
                _engine_event("error", phase="worker_setup", worker_id=worker_id, error=repr(exc)[:200])
                return

            log_line(f"[WORKER {worker_id}] Started")
            fetch_client = FetchClient(
                portal,
                self.control,
                max_retries=self.max_retries,
                retry_delay=self.retry_delay,
                online_probe=self.online_probe,
                online_poll_seconds=self.online_poll_seconds,
            )
            scheduler = BatchScheduler(
                cids,
                control=self.control,
                store=self.store,
                tracker=self.tracker,
                writer=self.writer,
                fetch_client=fetch_client,
                batch_size=self.batch_size,
                inter_batch_delay=self.inter_batch_delay,
            )
            batches = scheduler.run_loop(worker_id)
            _engine_event("state", phase="worker_done", worker_id=worker_id, batches=batches)
        except Exception as exc:  # noqa: BLE001
            log_line(f"[WORKER {worker_id}][WARN] Crashed: {exc}")
            _engine_event("error", phase="worker_crash", worker_id=worker_id, error=repr(exc)[:200])
        finally:
            if portal is not None:
                try:
                    portal.close()
                except Exception as exc:  # noqa: BLE001
                    log_line(f"[WORKER {worker_id}][WARN] Error closing portal: {exc}")
            remaining = self.control.worker_finished(worker_id)
            if remaining == 0:
                log_line("[POOL] All workers finished")

    def start(self, n: int, cids: Sequence[str]) -> List[threading.Thread]:
        """Start ``n`` workers over ``cids``; ``control.start`` must come first."""

        threads = [
            threading.Thread(
                target=self._worker,
                args=(worker_id, cids),
                name=f"worker-{worker_id}",
                daemon=True,
            )
            for worker_id in range(1, n + 1)
        ]
        with self._lock:
            self._threads = threads
        log_line(f"[POOL] Starting processing with {n} workers")
        for thread in threads:
            thread.start()
        return threads

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for every worker thread; ``False`` if any is still alive."""

        with self._lock:
            threads = list(self._threads)
        for thread in threads:
            thread.join(timeout)
        alive = any(thread.is_alive() for thread in threads)
        if not alive:
            with self._lock:
                if self._threads == threads:
                    self._threads = []
        return not alive

    def stop(self, timeout: Optional[float] = None) -> bool:
        """Signal stop and block until the workers drain."""

        if self.control.is_active():
            self.control.request_stop()
        return self.join(timeout)

    @property
    def alive_workers(self) -> int:
        with self._lock:
            return sum(1 for thread in self._threads if thread.is_alive())


__all__ = ["PortalFactory", "WorkerPool"]

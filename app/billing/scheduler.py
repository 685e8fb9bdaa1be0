"""Per-worker batch loop over the shared CID list."""

from __future__ import annotations

from typing import Optional, Sequence

from . import config
from .control import RunControl
from .errors import FetchError, FetchErrorKind
from .fetch_client import FetchClient, FetchOutcome
from .logging_utils import _engine_event
from .progress import ProgressTracker
from .record_store import RecordStore
from .utils import log_line
from .writer import BatchResult, PersistenceWriter


class BatchScheduler:
    """Drive one worker through claimed batches until the list is exhausted.

    Pause and stop are observed before each batch, before each CID and
    during every wait. CIDs already present in the Record Store (as a
    result or a failure) are skipped without touching the portal.
    """

    def __init__(
        self,
        cids: Sequence[str],
        *,
        control: RunControl,
        store: RecordStore,
        tracker: ProgressTracker,
        writer: PersistenceWriter,
        fetch_client: FetchClient,
        batch_size: Optional[int] = None,
        inter_batch_delay: Optional[float] = None,
    ) -> None:
        self.cids = list(cids)
        self.control = control
        self.store = store
        self.tracker = tracker
        self.writer = writer
        self.fetch_client = fetch_client
        self.batch_size = max(1, config.BATCH_SIZE if batch_size is None else batch_size)
        self.inter_batch_delay = (
            config.INTER_BATCH_DELAY_SECONDS if inter_batch_delay is None else inter_batch_delay
        )

    @property
    def total(self) -> int:
        return len(self.cids)

    def _fetch(self, worker_id: int, cid: str) -> FetchOutcome:
        try:
            return self.fetch_client.fetch(cid)
        except Exception as exc:  # noqa: BLE001
            log_line(f"[WORKER {worker_id}][WARN] Unexpected error for CID {cid}: {exc}")
            _engine_event("error", phase="fetch", worker_id=worker_id, cid=cid, error=repr(exc)[:200])
            return FetchOutcome(
                cid=cid,
                error=FetchError(FetchErrorKind.TIMEOUT, str(exc)),
                attempts=1,
            )

    def process_batch(self, worker_id: int, start: int, end: int) -> BatchResult:
        """Attempt every CID in ``[start, end)`` not already recorded."""

        result = BatchResult(worker_id=worker_id, start=start, end=end, upto=end)
        log_line(
            f"[WORKER {worker_id}] Processing batch of {end - start} CIDs "
            f"({start + 1}-{end} of {self.total})"
        )

        for index in range(start, end):
            cid = self.cids[index]
            if not self.control.checkpoint():
                result.upto = index
                result.interrupted = True
                break

            if self.store.contains(cid) or cid in result.entries or cid in result.failures:
                result.skipped += 1
                continue

            log_line(f"[WORKER {worker_id}] Processing CID {cid}")
            outcome = self._fetch(worker_id, cid)
            if outcome.cancelled:
                result.upto = index
                result.interrupted = True
                break

            if outcome.ok:
                result.entries[cid] = outcome.data or {}
                log_line(f"[WORKER {worker_id}] Processed CID {cid}")
            else:
                result.failures.add(cid)
                message = outcome.error.message[:100] if outcome.error else "no data returned"
                log_line(f"[WORKER {worker_id}][WARN] Failed to process CID {cid}: {message}")

        return result

    def run_loop(self, worker_id: int) -> int:
        """Process batches until exhaustion or stop; return batches committed."""

        batches = 0
        while self.control.checkpoint():
            claim = self.tracker.claim(self.batch_size, self.total)
            if claim is None:
                log_line(f"[WORKER {worker_id}] No more CIDs to process")
                break

            start, end = claim
            result = self.process_batch(worker_id, start, end)
            self.writer.commit(result).result()
            batches += 1

            if result.succeeded or result.failed:
                log_line(
                    f"[WORKER {worker_id}] Batch results: {result.succeeded} success, "
                    f"{result.failed} failed, {result.skipped} skipped"
                )
            if result.interrupted:
                break
            if self.control.sleep(self.inter_batch_delay):
                break

        log_line(f"[WORKER {worker_id}] Finished processing")
        return batches


__all__ = ["BatchScheduler"]

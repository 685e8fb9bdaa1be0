"""Retrying wrapper around a worker's portal."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from . import config
from .connectivity import OnlineProbe, is_online, wait_for_online
from .control import RunControl
from .errors import FetchError, FetchErrorKind
from .logging_utils import _engine_event
from .portal import Portal
from .retry_policy import decide_retry
from .utils import log_line
from .workbook import RecordData

MIN_ROW_CELLS = 4
PERIOD_CELL = 1
AMOUNT_CELL = 3
_AMOUNT_PATTERN = re.compile(r"^\d+\.?\d*$")


def parse_amount(text: Optional[str]) -> float:
    """Normalise an amount cell; anything but a plain non-negative decimal is 0."""

    cleaned = (text or "").strip().replace(",", "")
    if _AMOUNT_PATTERN.match(cleaned):
        return float(cleaned)
    return 0.0


def parse_rows(rows: Iterable[Sequence[str]]) -> RecordData:
    """Turn history rows into ``{period: amount}``.

    Rows with fewer than four cells are skipped. Raises ``FetchError``
    (``empty_result``) when no row survives.
    """

    record: RecordData = {}
    for cells in rows:
        if len(cells) < MIN_ROW_CELLS:
            continue
        label = (cells[PERIOD_CELL] or "").strip()
        record[label] = parse_amount(cells[AMOUNT_CELL])

    if not record:
        raise FetchError(FetchErrorKind.EMPTY_RESULT, "No data rows found")
    return record


@dataclass
class FetchOutcome:
    cid: str
    data: Optional[RecordData] = None
    error: Optional[FetchError] = None
    attempts: int = 0
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.data is not None


class FetchClient:
    """Run portal lookups with connectivity waits and a bounded retry loop.

    A stop observed while offline or between attempts cancels the lookup:
    the outcome carries ``cancelled=True`` and the caller leaves the CID
    unattempted instead of recording it as failed.
    """

    def __init__(
        self,
        portal: Portal,
        control: RunControl,
        *,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        online_probe: Optional[OnlineProbe] = None,
        online_poll_seconds: Optional[float] = None,
    ) -> None:
        self.portal = portal
        self.control = control
        self.max_retries = max(1, config.MAX_RETRIES if max_retries is None else max_retries)
        self.retry_delay = config.RETRY_DELAY_SECONDS if retry_delay is None else retry_delay
        self.online_probe = online_probe or is_online
        self.online_poll_seconds = online_poll_seconds

    def _attempt(self, cid: str) -> RecordData:
        if not self.online_probe():
            if not wait_for_online(
                self.control, self.online_probe, poll_seconds=self.online_poll_seconds
            ):
                raise FetchError(FetchErrorKind.DISCONNECTED, "Stopped while waiting for connectivity")
        return parse_rows(self.portal.lookup(cid))

    def fetch(self, cid: str) -> FetchOutcome:
        outcome = FetchOutcome(cid=cid)
        attempt = 0
        while attempt < self.max_retries:
            if self.control.should_stop():
                outcome.cancelled = True
                break

            attempt += 1
            outcome.attempts = attempt
            try:
                outcome.data = self._attempt(cid)
                outcome.error = None
                return outcome
            except FetchError as exc:
                outcome.error = exc
                log_line(
                    f"[FETCH][WARN] Attempt {attempt}/{self.max_retries} failed for CID {cid}: "
                    f"{exc.message[:100]}"
                )
                _engine_event(
                    "error",
                    phase="fetch_attempt",
                    cid=cid,
                    attempt=attempt,
                    error_kind=exc.kind.value,
                )

            kind = outcome.error.kind
            if kind == FetchErrorKind.DISCONNECTED:
                outcome.cancelled = True
                break
            if not decide_retry(attempt, self.max_retries, kind, cid=cid):
                break
            if self.control.sleep(self.retry_delay):
                outcome.cancelled = True
                break

        if outcome.cancelled:
            _engine_event("state", phase="fetch", kind="cancelled", cid=cid, attempts=outcome.attempts)
        return outcome


__all__ = ["FetchClient", "FetchOutcome", "parse_amount", "parse_rows"]

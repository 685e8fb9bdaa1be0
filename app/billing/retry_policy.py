from __future__ import annotations

from typing import Optional

from .errors import FetchErrorKind
from .logging_utils import _engine_event

RETRYABLE_ERROR_KINDS = {
    FetchErrorKind.TIMEOUT,
    FetchErrorKind.CHALLENGE_REJECTED,
    FetchErrorKind.NO_HISTORY_CONTROL,
    FetchErrorKind.EMPTY_RESULT,
}

NON_RETRYABLE_ERROR_KINDS = {
    # Only raised once a stop was observed while offline.
    FetchErrorKind.DISCONNECTED,
}


def decide_retry(
    attempt_index: int,
    max_attempts: int,
    error_kind: Optional[FetchErrorKind] = None,
    *,
    cid: Optional[str] = None,
) -> bool:
    """Decide whether a failed attempt (1-based) should be retried."""

    kind = FetchErrorKind(error_kind) if error_kind is not None else None

    if attempt_index >= max_attempts:
        _engine_event(
            "state",
            phase="retry_decision",
            kind="capped",
            cid=cid,
            attempt=attempt_index,
            max_attempts=max_attempts,
            error_kind=kind.value if kind else None,
            will_retry=False,
        )
        return False

    if kind in NON_RETRYABLE_ERROR_KINDS:
        _engine_event(
            "state",
            phase="retry_decision",
            kind="non_retryable",
            cid=cid,
            attempt=attempt_index,
            max_attempts=max_attempts,
            error_kind=kind.value,
            will_retry=False,
        )
        return False

    will_retry = kind in RETRYABLE_ERROR_KINDS
    _engine_event(
        "state",
        phase="retry_decision",
        kind="retryable" if will_retry else "missing_error_kind",
        cid=cid,
        attempt=attempt_index,
        max_attempts=max_attempts,
        error_kind=kind.value if kind else None,
        will_retry=will_retry,
    )
    return will_retry


__all__ = ["decide_retry", "RETRYABLE_ERROR_KINDS", "NON_RETRYABLE_ERROR_KINDS"]

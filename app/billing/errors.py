"""Error taxonomy for the harvesting engine.

Fetch error kinds are logged with every failed attempt and drive the retry
policy; persistence kinds only ever appear in warnings because read and write
failures are absorbed by the stores.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class FetchErrorKind(str, Enum):
    TIMEOUT = "timeout"
    CHALLENGE_REJECTED = "challenge_rejected"
    NO_HISTORY_CONTROL = "no_history_control"
    EMPTY_RESULT = "empty_result"
    DISCONNECTED = "disconnected"


class PersistenceErrorKind(str, Enum):
    READ_FAILED = "read_failed"
    WRITE_FAILED = "write_failed"
    PARSE_FAILED = "parse_failed"


class FetchError(Exception):
    """A single portal lookup attempt failed."""

    def __init__(self, kind: FetchErrorKind, message: str = "") -> None:
        self.kind = FetchErrorKind(kind)
        self.message = message or self.kind.value
        super().__init__(f"{self.kind.value}: {self.message}")


class PersistenceError(Exception):
    """Reading or writing a persisted artifact failed."""

    def __init__(
        self,
        kind: PersistenceErrorKind,
        path: Optional[str] = None,
        message: str = "",
    ) -> None:
        self.kind = PersistenceErrorKind(kind)
        self.path = path
        self.message = message
        location = f" ({path})" if path else ""
        super().__init__(f"{self.kind.value}{location}: {message}")


class ControlError(Exception):
    """A control request is not valid in the current run state."""


__all__ = [
    "FetchErrorKind",
    "PersistenceErrorKind",
    "FetchError",
    "PersistenceError",
    "ControlError",
]

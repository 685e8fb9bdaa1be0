"""Network reachability probe used before every portal lookup."""

from __future__ import annotations

from typing import Callable, Optional

import requests

from . import config
from .control import RunControl
from .logging_utils import _engine_event
from .utils import log_line

OnlineProbe = Callable[[], bool]


def is_online(url: Optional[str] = None, *, timeout: Optional[float] = None) -> bool:
    """Return ``True`` when ``url`` answers at all within ``timeout``."""

    target = url or config.CHECK_INTERNET_URL
    try:
        requests.get(target, timeout=timeout or config.CONNECTIVITY_TIMEOUT_SECONDS)
    except requests.RequestException:
        return False
    return True


def wait_for_online(
    control: RunControl,
    probe: OnlineProbe = is_online,
    *,
    poll_seconds: Optional[float] = None,
) -> bool:
    """Block until ``probe`` succeeds; ``False`` if a stop arrives first."""

    interval = config.ONLINE_POLL_SECONDS if poll_seconds is None else poll_seconds
    log_line("[NET] Waiting for internet connection...")
    _engine_event("state", phase="connectivity", kind="offline")
    while not control.should_stop():
        if probe():
            log_line("[NET] Internet connection restored")
            _engine_event("state", phase="connectivity", kind="online")
            return True
        if control.sleep(interval):
            break
    log_line("[NET] Stop requested while waiting for connectivity")
    return False


__all__ = ["OnlineProbe", "is_online", "wait_for_online"]

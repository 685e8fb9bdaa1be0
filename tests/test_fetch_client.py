from __future__ import annotations

import threading
import time
from typing import List

import pytest

from app.billing import fetch_client
from app.billing.control import RunControl
from app.billing.errors import FetchError, FetchErrorKind
from app.billing.fetch_client import FetchClient, parse_amount, parse_rows
from tests.test_scheduler import FakePortal, rows_for


@pytest.fixture
def control() -> RunControl:
    control = RunControl(pause_poll_seconds=0.05)
    control.start(1)
    return control


@pytest.fixture
def sleeps(control: RunControl, monkeypatch: pytest.MonkeyPatch) -> List[float]:
    recorded: List[float] = []

    def _sleep(seconds: float) -> bool:
        recorded.append(seconds)
        return control.should_stop()

    monkeypatch.setattr(control, "sleep", _sleep)
    return recorded


@pytest.mark.parametrize(
    "text, expected",
    [
        ("1,234.50", 1234.5),
        ("  42 ", 42.0),
        ("7.", 7.0),
        ("0", 0.0),
        ("", 0.0),
        (None, 0.0),
        ("N/A", 0.0),
        ("-15", 0.0),
        ("1.2.3", 0.0),
    ],
)
def test_parse_amount(text, expected) -> None:
    assert parse_amount(text) == expected


def test_parse_rows_skips_short_rows() -> None:
    rows = [
        ["#", "Period"],
        ["1", " Jan-24 ", "120", "1,500.25"],
        ["2", "Feb-24", "110", "--"],
    ]

    assert parse_rows(rows) == {"Jan-24": 1500.25, "Feb-24": 0.0}


def test_parse_rows_without_data_is_empty_result() -> None:
    with pytest.raises(FetchError) as excinfo:
        parse_rows([["only", "three", "cells"]])

    assert excinfo.value.kind == FetchErrorKind.EMPTY_RESULT


def test_fetch_returns_data_on_first_success(control: RunControl, sleeps: List[float]) -> None:
    portal = FakePortal({"C1": rows_for({"Jan": 100.0, "Feb": 80.5})})
    client = FetchClient(portal, control, max_retries=3, retry_delay=10, online_probe=lambda: True)

    outcome = client.fetch("C1")

    assert outcome.ok
    assert outcome.data == {"Jan": 100.0, "Feb": 80.5}
    assert outcome.attempts == 1
    assert outcome.error is None
    assert sleeps == []


def test_fetch_gives_up_after_max_retries(control: RunControl, sleeps: List[float]) -> None:
    portal = FakePortal({"C1": FetchError(FetchErrorKind.TIMEOUT, "slow page")})
    client = FetchClient(portal, control, max_retries=3, retry_delay=10, online_probe=lambda: True)

    outcome = client.fetch("C1")

    assert not outcome.ok
    assert not outcome.cancelled
    assert outcome.attempts == 3
    assert outcome.error is not None
    assert outcome.error.kind == FetchErrorKind.TIMEOUT
    assert portal.calls == ["C1"] * 3
    assert sleeps == [10, 10]


def test_fetch_succeeds_on_later_attempt(control: RunControl, sleeps: List[float]) -> None:
    answers = iter(
        [
            FetchError(FetchErrorKind.CHALLENGE_REJECTED, "wrong answer"),
            rows_for({"Jan": 5.0}),
        ]
    )

    def _flaky(cid: str):
        answer = next(answers)
        if isinstance(answer, FetchError):
            raise answer
        return answer

    portal = FakePortal({"C1": _flaky})
    client = FetchClient(portal, control, max_retries=3, retry_delay=2, online_probe=lambda: True)

    outcome = client.fetch("C1")

    assert outcome.data == {"Jan": 5.0}
    assert outcome.attempts == 2
    assert sleeps == [2]


def test_fetch_waits_for_connectivity(control: RunControl, sleeps: List[float]) -> None:
    probes = iter([False, False, True])
    portal = FakePortal()
    client = FetchClient(
        portal,
        control,
        max_retries=3,
        retry_delay=10,
        online_probe=lambda: next(probes),
        online_poll_seconds=5,
    )

    outcome = client.fetch("C1")

    assert outcome.ok
    assert outcome.attempts == 1
    assert sleeps == [5]
    assert portal.calls == ["C1"]


def test_stop_while_offline_cancels_fetch(control: RunControl, sleeps: List[float]) -> None:
    def _offline() -> bool:
        control.request_stop()
        return False

    portal = FakePortal()
    client = FetchClient(portal, control, max_retries=3, retry_delay=10, online_probe=_offline)

    outcome = client.fetch("C1")

    assert outcome.cancelled
    assert not outcome.ok
    assert outcome.error is not None
    assert outcome.error.kind == FetchErrorKind.DISCONNECTED
    assert portal.calls == []


def test_stop_during_retry_wait_cancels_promptly(control: RunControl) -> None:
    portal = FakePortal({"C1": FetchError(FetchErrorKind.NO_HISTORY_CONTROL, "missing button")})
    client = FetchClient(portal, control, max_retries=3, retry_delay=30, online_probe=lambda: True)
    threading.Timer(0.1, control.request_stop).start()

    started = time.monotonic()
    outcome = client.fetch("C1")

    assert time.monotonic() - started < 5
    assert outcome.cancelled
    assert outcome.attempts == 1
    assert portal.calls == ["C1"]


def test_stop_before_first_attempt_skips_portal(control: RunControl) -> None:
    control.request_stop()
    portal = FakePortal()
    client = FetchClient(portal, control, max_retries=3, retry_delay=0, online_probe=lambda: True)

    outcome = client.fetch("C1")

    assert outcome.cancelled
    assert outcome.attempts == 0
    assert portal.calls == []


def test_failed_attempts_are_logged(
    control: RunControl, sleeps: List[float], monkeypatch: pytest.MonkeyPatch
) -> None:
    lines: List[str] = []
    monkeypatch.setattr(fetch_client, "log_line", lambda msg: lines.append(msg))
    portal = FakePortal({"C9": FetchError(FetchErrorKind.EMPTY_RESULT, "No data rows found")})
    client = FetchClient(portal, control, max_retries=2, retry_delay=0, online_probe=lambda: True)

    client.fetch("C9")

    assert lines == [
        "[FETCH][WARN] Attempt 1/2 failed for CID C9: No data rows found",
        "[FETCH][WARN] Attempt 2/2 failed for CID C9: No data rows found",
    ]

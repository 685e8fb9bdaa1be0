"""Cooperative run control shared by the API and every worker."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from . import config
from .errors import ControlError
from .logging_utils import _engine_event


class RunPhase(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPING = "stopping"
    STOPPED = "stopped"


ACTIVE_PHASES = {RunPhase.RUNNING, RunPhase.PAUSED}


@dataclass(frozen=True)
class RunControlSnapshot:
    phase: RunPhase
    paused: bool
    stopping: bool
    active_workers: int

    @property
    def processing_active(self) -> bool:
        return self.phase in ACTIVE_PHASES


class RunControl:
    """Pause/stop flags plus the active worker count.

    Workers never block each other on this object: they poll it at
    checkpoints between CIDs, between batches and inside every wait.
    """

    def __init__(self, *, pause_poll_seconds: Optional[float] = None) -> None:
        self._lock = threading.Lock()
        self._phase = RunPhase.IDLE
        self._active_workers = 0
        self._stop_event = threading.Event()
        self._resume_event = threading.Event()
        self._resume_event.set()
        self._drained = threading.Condition(self._lock)
        self.pause_poll_seconds = (
            config.PAUSE_POLL_SECONDS if pause_poll_seconds is None else pause_poll_seconds
        )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _transition(self, target: RunPhase, **fields: object) -> None:
        previous = self._phase
        self._phase = target
        _engine_event(
            "control",
            from_phase=previous.value,
            to_phase=target.value,
            active_workers=self._active_workers,
            **fields,
        )

    def start(self, workers: int) -> None:
        """Enter ``running`` with ``workers`` expected worker slots."""

        with self._lock:
            if self._phase not in {RunPhase.IDLE, RunPhase.STOPPED}:
                raise ControlError("Processing is already running")
            self._stop_event.clear()
            self._resume_event.set()
            self._active_workers = max(0, int(workers))
            self._transition(RunPhase.RUNNING, workers=self._active_workers)
            if self._active_workers == 0:
                self._transition(RunPhase.IDLE, reason="no_workers")

    def pause(self) -> None:
        with self._lock:
            if self._phase == RunPhase.PAUSED:
                return
            if self._phase != RunPhase.RUNNING:
                raise ControlError("No active processing to pause")
            self._resume_event.clear()
            self._transition(RunPhase.PAUSED)

    def resume(self) -> None:
        with self._lock:
            if self._phase != RunPhase.PAUSED:
                raise ControlError("Processing is not paused")
            self._resume_event.set()
            self._transition(RunPhase.RUNNING)

    def request_stop(self) -> None:
        with self._lock:
            if self._phase not in ACTIVE_PHASES:
                raise ControlError("No active processing to stop")
            self._stop_event.set()
            self._resume_event.set()
            self._transition(RunPhase.STOPPING)
            if self._active_workers == 0:
                self._transition(RunPhase.STOPPED)
                self._drained.notify_all()

    def worker_finished(self, worker_id: int) -> int:
        """Release one worker slot and return the remaining count."""

        with self._lock:
            self._active_workers = max(0, self._active_workers - 1)
            remaining = self._active_workers
            _engine_event("control", phase="worker_finished", worker_id=worker_id, remaining=remaining)
            if remaining == 0:
                if self._phase == RunPhase.STOPPING:
                    self._transition(RunPhase.STOPPED)
                elif self._phase in ACTIVE_PHASES:
                    self._resume_event.set()
                    self._transition(RunPhase.IDLE, reason="workers_drained")
                self._drained.notify_all()
            return remaining

    def wait_drained(self, timeout: Optional[float] = None) -> bool:
        """Block until no worker is active; ``False`` on timeout."""

        deadline = None if timeout is None else time.monotonic() + timeout
        with self._lock:
            while self._active_workers > 0:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return False
                self._drained.wait(remaining)
            return True

    # ------------------------------------------------------------------
    # Worker checkpoints
    # ------------------------------------------------------------------

    def should_stop(self) -> bool:
        return self._stop_event.is_set()

    def is_paused(self) -> bool:
        return not self._resume_event.is_set()

    def checkpoint(self) -> bool:
        """Block while paused; return ``False`` once a stop is requested."""

        if self.is_paused() and not self.should_stop():
            _engine_event("control", phase="checkpoint", kind="paused_wait")
            while self.is_paused() and not self.should_stop():
                self._resume_event.wait(self.pause_poll_seconds)
            if not self.should_stop():
                _engine_event("control", phase="checkpoint", kind="resumed")
        return not self.should_stop()

    def sleep(self, seconds: float) -> bool:
        """Wait up to ``seconds``; return ``True`` if a stop cut it short."""

        if seconds and seconds > 0:
            return self._stop_event.wait(seconds)
        return self.should_stop()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def phase(self) -> RunPhase:
        with self._lock:
            return self._phase

    def is_active(self) -> bool:
        return self.phase in ACTIVE_PHASES

    def snapshot(self) -> RunControlSnapshot:
        with self._lock:
            return RunControlSnapshot(
                phase=self._phase,
                paused=self._phase == RunPhase.PAUSED,
                stopping=self._stop_event.is_set(),
                active_workers=self._active_workers,
            )


__all__ = ["RunPhase", "RunControl", "RunControlSnapshot", "ACTIVE_PHASES"]

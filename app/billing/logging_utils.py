from __future__ import annotations

from typing import Any

from .utils import log_line


def _engine_event(label: str = "", *, phase: str | None = None, **fields: Any) -> None:
    """Emit a structured engine log line.

    ``phase`` doubles as the label when no label is given. When both are
    provided the phase is carried in the payload so the event stage is still
    captured.
    """

    try:
        phase_label = label or (phase or "")
        if phase and label:
            fields.setdefault("phase", phase)
        payload = ", ".join(f"{k}={repr(v)}" for k, v in sorted(fields.items()))
        log_line(f"[ENGINE][{phase_label.upper()}] {payload}")
    except Exception:
        # Never let logging break a worker.
        return


__all__ = ["_engine_event"]

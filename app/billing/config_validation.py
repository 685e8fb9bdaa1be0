from __future__ import annotations

from typing import Literal

from . import config
from .logging_utils import _engine_event
from .utils import log_line

Entrypoint = Literal["api", "cli", "tests"]

MAX_WORKERS_CEILING = 4


def _raise_config_error(message: str, *, entrypoint: Entrypoint, error: str) -> None:
    _engine_event(
        "error",
        phase="config",
        context="runtime_validation",
        error=error,
        entrypoint=entrypoint,
    )
    log_line(f"[CONFIG] {message} (entrypoint={entrypoint})")
    raise ValueError(message)


def _clamp(field: str, value: int, adjusted: int, *, entrypoint: Entrypoint) -> int:
    _engine_event(
        "state",
        phase="config",
        context="runtime_validation",
        kind="config_adjustment",
        field=field,
        value=value,
        adjusted=adjusted,
        entrypoint=entrypoint,
    )
    log_line(f"[CONFIG] {field}={value} out of range; clamping to {adjusted}.")
    return adjusted


def validate_runtime_config(entrypoint: Entrypoint) -> None:
    """Validate runtime configuration for the given entrypoint.

    Raises ``ValueError`` when a blocking misconfiguration is detected.
    Worker counts outside ``1..4`` are clamped and logged instead.
    """

    if not str(config.PORTAL_URL).lower().startswith(("http://", "https://")):
        _raise_config_error(
            "PORTAL_URL must be an http(s) URL.",
            entrypoint=entrypoint,
            error="invalid_portal_url",
        )

    if config.BATCH_SIZE < 1:
        _raise_config_error(
            "BATCH_SIZE must be at least 1.",
            entrypoint=entrypoint,
            error="invalid_batch_size",
        )

    if config.MAX_RETRIES < 1:
        _raise_config_error(
            "MAX_RETRIES must be at least 1.",
            entrypoint=entrypoint,
            error="invalid_max_retries",
        )

    if config.MAX_WORKERS < 1:
        config.MAX_WORKERS = _clamp("MAX_WORKERS", config.MAX_WORKERS, 1, entrypoint=entrypoint)
    elif config.MAX_WORKERS > MAX_WORKERS_CEILING:
        config.MAX_WORKERS = _clamp(
            "MAX_WORKERS", config.MAX_WORKERS, MAX_WORKERS_CEILING, entrypoint=entrypoint
        )

    if config.RETRY_DELAY_SECONDS < 0:
        _raise_config_error(
            "RETRY_DELAY_SECONDS must be non-negative.",
            entrypoint=entrypoint,
            error="invalid_retry_delay",
        )


__all__ = ["validate_runtime_config", "Entrypoint", "MAX_WORKERS_CEILING"]

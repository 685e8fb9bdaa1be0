"""Headless entrypoint: run one harvesting pass to completion.

Usage::

    python -m app.billing.run --workers 2 --input data/input/cids.xlsx

An interrupt (Ctrl+C) or SIGTERM raises the stop flag; the workers finish
their current CID, persist their partial batch and exit.
"""

from __future__ import annotations

import argparse
import signal
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from . import config
from .config_validation import validate_runtime_config
from .engine import BillingEngine
from .errors import ControlError
from .utils import ensure_dirs, log_line, setup_run_logger


def install_signal_handlers(
    engine: BillingEngine,
    *,
    exit_after: bool,
    signals: tuple[int, ...] = (signal.SIGINT, signal.SIGTERM),
) -> Callable[[int, Any], None]:
    """Route interrupt signals into the engine's stop sequence.

    With ``exit_after`` the handler drains the workers and exits the process
    (server mode); otherwise it only raises the stop flag and lets the
    caller's wait return.
    """

    def _handle(signum: int, _frame: Any) -> None:
        log_line(f"[RUN] Received signal {signum}. Stopping gracefully...")
        if exit_after:
            engine.shutdown()
            sys.exit(0)
        try:
            engine.request_stop()
        except ControlError:
            pass

    for sig in signals:
        signal.signal(sig, _handle)
    return _handle


def run_headless(
    *,
    workers: Optional[int] = None,
    input_path: Optional[Path] = None,
    batch_size: Optional[int] = None,
    max_retries: Optional[int] = None,
    engine: Optional[BillingEngine] = None,
    handle_signals: bool = True,
) -> Dict[str, Any]:
    """Run one pass over the input list and return the final status."""

    ensure_dirs()
    setup_run_logger()
    validate_runtime_config("cli")

    engine = engine or BillingEngine(
        input_path=input_path,
        batch_size=batch_size,
        max_retries=max_retries,
    )
    if handle_signals:
        install_signal_handlers(engine, exit_after=False)

    try:
        count = engine.start(workers)
        log_line(f"[RUN] Started {count} workers")
        engine.wait()
    finally:
        engine.writer.shutdown()

    status = engine.status()
    log_line(
        f"[RUN] Finished: last_processed={status['last_processed']} "
        f"total_processed={status['total_processed']} total_failed={status['total_failed']}"
    )
    return status


def _cli_entrypoint(argv: Optional[List[str]] = None) -> None:  # pragma: no cover
    parser = argparse.ArgumentParser(description="Harvest bill history for every CID in the input list")
    parser.add_argument("--workers", type=int, default=None)
    parser.add_argument("--input", dest="input_path", type=Path, default=None)
    parser.add_argument("--batch-size", type=int, default=config.BATCH_SIZE)
    parser.add_argument("--max-retries", type=int, default=config.MAX_RETRIES)
    args = parser.parse_args(argv)

    run_headless(
        workers=args.workers,
        input_path=args.input_path,
        batch_size=args.batch_size,
        max_retries=args.max_retries,
    )


__all__ = ["run_headless", "install_signal_handlers", "_cli_entrypoint"]


if __name__ == "__main__":  # pragma: no cover
    _cli_entrypoint()

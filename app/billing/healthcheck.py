from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from . import config
from .config_validation import Entrypoint, validate_runtime_config
from .connectivity import is_online
from .logging_utils import _engine_event
from .utils import ensure_dirs, log_line


@dataclass
class HealthResult:
    ok: bool
    checks: dict[str, dict[str, Any]]


def run_health_checks(entrypoint: Entrypoint = "cli") -> HealthResult:
    checks: dict[str, dict[str, Any]] = {}

    try:
        validate_runtime_config(entrypoint)
        checks["config"] = {"ok": True}
    except ValueError as exc:
        checks["config"] = {"ok": False, "error": str(exc)}

    try:
        ensure_dirs()
        checks["filesystem"] = {"ok": True, "data_dir": str(config.DATA_DIR)}
    except OSError as exc:
        checks["filesystem"] = {"ok": False, "data_dir": str(config.DATA_DIR), "error": str(exc)}

    checks["input"] = {
        "ok": config.INPUT_FILE.is_file(),
        "input_file": str(config.INPUT_FILE),
    }

    checks["connectivity"] = {
        "ok": is_online(),
        "url": config.CHECK_INTERNET_URL,
    }

    # Connectivity is advisory for the API; workers wait it out anyway.
    strict_connectivity = entrypoint == "cli"
    overall_ok = all(
        check.get("ok", False)
        for name, check in checks.items()
        if strict_connectivity or name != "connectivity"
    )

    _engine_event(
        "state" if overall_ok else "error",
        phase="health",
        context="healthcheck",
        ok=overall_ok,
        checks=checks,
    )

    return HealthResult(ok=overall_ok, checks=checks)


if __name__ == "__main__":  # pragma: no cover
    result = run_health_checks(entrypoint="cli")
    for name, info in result.checks.items():
        status = "OK" if info.get("ok") else "FAIL"
        log_line(f"[HEALTH] {name}: {status} {info}")
    raise SystemExit(0 if result.ok else 1)

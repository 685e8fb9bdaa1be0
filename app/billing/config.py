"""Configuration constants for the bill harvesting engine."""
from __future__ import annotations

import os
from pathlib import Path

DATA_DIR: Path = Path(os.getenv("BILLING_DATA_DIR", "/app/data"))
LOG_DIR: Path = DATA_DIR / "logs"
LOG_FILE: Path = LOG_DIR / "latest.log"
INPUT_FILE: Path = Path(
    os.getenv("BILLING_INPUT_FILE", str(DATA_DIR / "input" / "VSKP1_data.xlsx"))
)
OUTPUT_FILE: Path = Path(
    os.getenv("BILLING_OUTPUT_FILE", str(DATA_DIR / "output" / "VSKP2_data.xlsx"))
)
FAILED_FILE: Path = Path(
    os.getenv("BILLING_FAILED_FILE", str(DATA_DIR / "failed" / "VSKP1_failed.json"))
)
STATUS_FILE: Path = Path(os.getenv("BILLING_STATUS_FILE", str(DATA_DIR / "status.json")))

PORTAL_URL: str = os.getenv(
    "BILLING_PORTAL_URL", "https://www.apeasternpower.com/viewBillDetailsMain"
)
CHECK_INTERNET_URL: str = os.getenv("BILLING_CHECK_INTERNET_URL", "http://www.google.com")
CHROME_BINARY: str = os.getenv("BILLING_CHROME_BINARY", "").strip()

PORT: int = int(os.getenv("PORT", "3000"))

# Result table column holding the identifier.
CID_COLUMN: str = "CID"


def _parse_seconds(env_var: str, default: float, *, minimum: float = 0.0) -> float:
    """Parse a duration in seconds from the environment with a lower bound."""

    try:
        value = float(os.getenv(env_var, str(default)))
    except ValueError:
        return default
    return max(minimum, value)


def _default_max_workers() -> int:
    cpus = os.cpu_count() or 1
    return max(1, min(4, cpus - 1))


MAX_RETRIES: int = int(os.getenv("BILLING_MAX_RETRIES", "3"))
RETRY_DELAY_SECONDS: float = _parse_seconds("BILLING_RETRY_DELAY_SECONDS", 10.0)
BATCH_SIZE: int = int(os.getenv("BILLING_BATCH_SIZE", "10"))
MAX_WORKERS: int = int(os.getenv("BILLING_MAX_WORKERS", str(_default_max_workers())))

# Cooperative wait intervals (seconds)
PAUSE_POLL_SECONDS: float = _parse_seconds("BILLING_PAUSE_POLL_SECONDS", 1.0, minimum=0.05)
ONLINE_POLL_SECONDS: float = _parse_seconds("BILLING_ONLINE_POLL_SECONDS", 5.0, minimum=0.05)
INTER_BATCH_DELAY_SECONDS: float = _parse_seconds("BILLING_INTER_BATCH_DELAY_SECONDS", 1.0)

# Portal interaction timeouts (seconds)
# Per wait condition (element located, dialog present, table rendered).
PAGE_STEP_TIMEOUT_SECONDS: float = _parse_seconds(
    "BILLING_PAGE_STEP_TIMEOUT_SECONDS", 10.0, minimum=1.0
)
# Settle time after navigation and after submitting the challenge.
PAGE_SETTLE_SECONDS: float = _parse_seconds("BILLING_PAGE_SETTLE_SECONDS", 2.0)
CONNECTIVITY_TIMEOUT_SECONDS: float = _parse_seconds(
    "BILLING_CONNECTIVITY_TIMEOUT_SECONDS", 5.0, minimum=0.5
)


__all__ = [
    "DATA_DIR",
    "LOG_DIR",
    "LOG_FILE",
    "INPUT_FILE",
    "OUTPUT_FILE",
    "FAILED_FILE",
    "STATUS_FILE",
    "PORTAL_URL",
    "CHECK_INTERNET_URL",
    "CHROME_BINARY",
    "PORT",
    "CID_COLUMN",
    "MAX_RETRIES",
    "RETRY_DELAY_SECONDS",
    "BATCH_SIZE",
    "MAX_WORKERS",
    "PAUSE_POLL_SECONDS",
    "ONLINE_POLL_SECONDS",
    "INTER_BATCH_DELAY_SECONDS",
    "PAGE_STEP_TIMEOUT_SECONDS",
    "PAGE_SETTLE_SECONDS",
    "CONNECTIVITY_TIMEOUT_SECONDS",
]

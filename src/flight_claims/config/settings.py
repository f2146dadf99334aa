"""Centralized configuration from environment variables with defaults."""

import os
from typing import Any

from dotenv import load_dotenv

load_dotenv()


def _float(key: str, default: float) -> float:
    raw = os.environ.get(key)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _int(key: str, default: int) -> int:
    raw = os.environ.get(key)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _csv(key: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.environ.get(key)
    if raw is None:
        return default
    parts = tuple(p.strip().lower() for p in raw.split(",") if p.strip())
    return parts or default


# ---------------------------------------------------------------------------
# Filing
# ---------------------------------------------------------------------------

def get_filing_config() -> dict[str, Any]:
    """Filing deadlines and automatic filing policy."""
    return {
        "filing_deadline_hours": _float("FILING_DEADLINE_HOURS", 48.0),
        "default_follow_up_days": _int("DEFAULT_FOLLOW_UP_DAYS", 14),
        # Submission methods the system can file without an operator
        "auto_filing_methods": _csv("AUTO_FILING_METHODS", ("email",)),
        "max_notes_length": _int("MAX_NOTES_LENGTH", 2000),
    }


# ---------------------------------------------------------------------------
# Automatic refunds
# ---------------------------------------------------------------------------

def get_refund_config() -> dict[str, Any]:
    """Refund trigger windows."""
    return {
        "filing_deadline_hours": _float("FILING_DEADLINE_HOURS", 48.0),
        "customer_request_window_hours": _float(
            "REFUND_CUSTOMER_REQUEST_WINDOW_HOURS", 24.0
        ),
        "document_grace_hours": _float("REFUND_DOCUMENT_GRACE_HOURS", 72.0),
        "no_response_days": _int("REFUND_NO_RESPONSE_DAYS", 60),
    }


# ---------------------------------------------------------------------------
# External calls and batches
# ---------------------------------------------------------------------------

def get_store_timeout() -> float:
    """Seconds SQLite waits on a locked database before failing."""
    return _float("CLAIMS_STORE_TIMEOUT_SECONDS", 5.0)


def get_gateway_timeout() -> float:
    """Seconds to wait for a single payment gateway refund call."""
    return _float("PAYMENT_GATEWAY_TIMEOUT_SECONDS", 15.0)


def get_batch_max_workers() -> int:
    """Upper bound on claims processed concurrently inside one batch."""
    return max(1, _int("BATCH_MAX_WORKERS", 5))


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

def get_logging_config() -> dict[str, Any]:
    """Log output format ("human" or "json") and level name."""
    log_format = os.environ.get("FLIGHT_CLAIMS_LOG_FORMAT", "human").strip().lower()
    return {
        "format": log_format if log_format in ("human", "json") else "human",
        "level": os.environ.get("FLIGHT_CLAIMS_LOG_LEVEL", "INFO").strip().upper(),
    }

"""Logging that carries claim context.

Filing and refund code logs through the standard ``logging`` module. Batch
workers wrap each claim in ``claim_context`` so every line they emit, in
either output format, names the claim, the operation and the batch's
correlation id.
"""

import json
import logging
import sys
import threading
import time
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

from flight_claims.config.settings import get_logging_config

_CONTEXT_KEYS = ("claim_id", "operation", "correlation_id")

# One context per thread; batch workers set their own
_context = threading.local()


def _get_claim_context() -> dict[str, Any]:
    return getattr(_context, "claim_data", {})


def _set_claim_context(data: dict[str, Any]) -> None:
    _context.claim_data = data


def _context_fields(record: logging.LogRecord) -> dict[str, Any]:
    """Claim id, operation and correlation id for a record; values set on the record win."""
    ambient = _get_claim_context()
    fields = {}
    for key in _CONTEXT_KEYS:
        value = getattr(record, key, None) or ambient.get(key)
        if value:
            fields[key] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_context_fields(record),
        }
        data = getattr(record, "extra_data", None)
        if data:
            payload["data"] = data
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        payload["source"] = {
            "file": record.filename,
            "line": record.lineno,
            "function": record.funcName,
        }
        return json.dumps(payload, default=str)


class HumanReadableFormatter(logging.Formatter):
    """``<utc time> LEVEL [claim=.., op=.., corr=..] logger: message | data``"""

    converter = time.gmtime
    _LABELS = {"claim_id": "claim", "operation": "op", "correlation_id": "corr"}

    def format(self, record: logging.LogRecord) -> str:
        fields = _context_fields(record)
        tags = ", ".join(f"{self._LABELS[k]}={v}" for k, v in fields.items())
        prefix = f"{self.formatTime(record, '%Y-%m-%d %H:%M:%S')} {record.levelname:8}"
        if tags:
            prefix += f" [{tags}]"

        message = record.getMessage()
        data = getattr(record, "extra_data", None)
        if data:
            message = f"{message} | {data}"
        line = f"{prefix} {record.name}: {message}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


class ClaimLogger(logging.LoggerAdapter):
    """Adapter that stamps a fixed claim id on every record it emits."""

    def __init__(self, logger: logging.Logger, claim_id: str | None = None):
        super().__init__(logger, {})
        self._claim_id = claim_id

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        if self._claim_id:
            kwargs.setdefault("extra", {}).setdefault("claim_id", self._claim_id)
        return msg, kwargs


def _build_handler(structured: bool) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(StructuredFormatter() if structured else HumanReadableFormatter())
    return handler


def get_logger(
    name: str,
    claim_id: str | None = None,
    structured: bool | None = None,
) -> ClaimLogger:
    """Return a ClaimLogger for ``name``, attaching a stderr handler on first use.

    structured=None takes the format from FLIGHT_CLAIMS_LOG_FORMAT; the level
    always comes from FLIGHT_CLAIMS_LOG_LEVEL. A logger that already has
    handlers is left as configured.
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        config = get_logging_config()
        if structured is None:
            structured = config["format"] == "json"
        logger.addHandler(_build_handler(structured))
        logger.setLevel(getattr(logging, config["level"], logging.INFO))
        # Our handler already writes the record; the root logger must not repeat it
        logger.propagate = False
    return ClaimLogger(logger, claim_id)


@contextmanager
def claim_context(
    claim_id: str,
    operation: str | None = None,
    correlation_id: str | None = None,
    **extra: Any,
):
    """Tag every log line in the block, on this thread, with the claim.

    Pass a batch's correlation_id to group its claims; without one a fresh
    id is generated. The previous context is restored on exit, so contexts nest.
    """
    previous = _get_claim_context()
    _set_claim_context(
        {
            **extra,
            "claim_id": claim_id,
            "operation": operation,
            "correlation_id": correlation_id or str(uuid.uuid4()),
        }
    )
    try:
        yield
    finally:
        _set_claim_context(previous)


def log_claim_event(
    logger: logging.Logger | ClaimLogger,
    event: str,
    claim_id: str | None = None,
    level: int = logging.INFO,
    **data: Any,
) -> None:
    """Log ``[event] k=v, ...`` and attach the event and its data as ``extra_data``."""
    details = ", ".join(f"{key}={value}" for key, value in data.items())
    message = f"[{event}] {details}" if details else f"[{event}]"
    logger.log(level, message, extra={"claim_id": claim_id, "extra_data": {"event": event, **data}})

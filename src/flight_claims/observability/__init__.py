"""Observability module.

This module provides:
- Structured logging with claim ID context
- Outcome and latency metrics per claim operation
"""

from flight_claims.observability.logger import (
    ClaimLogger,
    claim_context,
    get_logger,
    log_claim_event,
)
from flight_claims.observability.metrics import (
    OperationMetrics,
    get_metrics,
    reset_metrics,
    track_operation,
)

__all__ = [
    # Logger
    "ClaimLogger",
    "get_logger",
    "claim_context",
    "log_claim_event",
    # Metrics
    "OperationMetrics",
    "get_metrics",
    "reset_metrics",
    "track_operation",
]

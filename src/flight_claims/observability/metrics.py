"""Outcome and latency metrics per claim operation.

This module provides:
- OperationMetrics: Aggregates outcomes per operation (validate, mark_as_filed, refund_execute, ...)
- Latency percentile calculations
- track_operation: context manager that times a block and records its outcome
"""

import json
import logging
import threading
import time
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)

# Most recent records kept per operation; summaries cover this window
DEFAULT_MAX_RECORDS = 1000


@dataclass
class OperationMetric:
    """A single recorded operation."""

    timestamp: datetime
    operation: str
    claim_id: str | None
    success: bool
    latency_ms: float
    error_code: str | None = None


@dataclass
class OperationSummary:
    """Aggregated metrics for one operation name."""

    operation: str
    total: int
    succeeded: int
    failed: int
    avg_latency_ms: float
    p50_latency_ms: float
    p95_latency_ms: float
    p99_latency_ms: float
    errors_by_code: dict[str, int]

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation": self.operation,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "avg_latency_ms": self.avg_latency_ms,
            "p50_latency_ms": self.p50_latency_ms,
            "p95_latency_ms": self.p95_latency_ms,
            "p99_latency_ms": self.p99_latency_ms,
            "errors_by_code": dict(self.errors_by_code),
        }


def _percentile(values: list[float], p: float) -> float:
    """Calculate the p-th percentile of values."""
    if not values:
        return 0.0
    sorted_values = sorted(values)
    k = (len(sorted_values) - 1) * p / 100
    f = int(k)
    c = f + 1
    if c >= len(sorted_values):
        return sorted_values[-1]
    return sorted_values[f] + (k - f) * (sorted_values[c] - sorted_values[f])


class OperationMetrics:
    """Thread-safe collector of operation outcomes and latencies.

    Keeps at most max_records per operation, dropping the oldest first.
    """

    def __init__(self, max_records: int = DEFAULT_MAX_RECORDS):
        if max_records < 1:
            raise ValueError("max_records must be at least 1")
        self._max_records = max_records
        self._lock = threading.RLock()
        self._records: dict[str, deque[OperationMetric]] = {}

    def record(
        self,
        operation: str,
        success: bool,
        latency_ms: float = 0.0,
        claim_id: str | None = None,
        error_code: str | None = None,
    ) -> None:
        metric = OperationMetric(
            timestamp=datetime.now(timezone.utc),
            operation=operation,
            claim_id=claim_id,
            success=success,
            latency_ms=latency_ms,
            error_code=error_code,
        )
        with self._lock:
            if operation not in self._records:
                self._records[operation] = deque(maxlen=self._max_records)
            self._records[operation].append(metric)
        logger.debug(
            "[operation_metric] op=%s claim_id=%s success=%s latency=%.1fms error=%s",
            operation,
            claim_id,
            success,
            latency_ms,
            error_code,
        )

    def get_summary(self, operation: str) -> OperationSummary | None:
        with self._lock:
            records = list(self._records.get(operation, ()))
        if not records:
            return None
        latencies = [r.latency_ms for r in records]
        errors: dict[str, int] = {}
        for r in records:
            if not r.success:
                code = r.error_code or "unknown"
                errors[code] = errors.get(code, 0) + 1
        succeeded = sum(1 for r in records if r.success)
        return OperationSummary(
            operation=operation,
            total=len(records),
            succeeded=succeeded,
            failed=len(records) - succeeded,
            avg_latency_ms=sum(latencies) / len(latencies),
            p50_latency_ms=_percentile(latencies, 50),
            p95_latency_ms=_percentile(latencies, 95),
            p99_latency_ms=_percentile(latencies, 99),
            errors_by_code=errors,
        )

    def get_all_summaries(self) -> list[OperationSummary]:
        with self._lock:
            operations = sorted(self._records)
        return [s for s in (self.get_summary(op) for op in operations) if s]

    def export_json(self) -> str:
        return json.dumps(
            {"operations": [s.to_dict() for s in self.get_all_summaries()]},
            indent=2,
        )


# Global metrics instance
_global_metrics: OperationMetrics | None = None
_metrics_lock = threading.Lock()


def get_metrics() -> OperationMetrics:
    """Get the global OperationMetrics instance."""
    global _global_metrics
    with _metrics_lock:
        if _global_metrics is None:
            _global_metrics = OperationMetrics()
        return _global_metrics


def reset_metrics() -> None:
    """Drop all recorded metrics (tests and long-running workers)."""
    global _global_metrics
    with _metrics_lock:
        _global_metrics = None


class _Outcome:
    """Mutable outcome handed to a track_operation block."""

    def __init__(self):
        self.success = True
        self.error_code: str | None = None

    def fail(self, error_code: str) -> None:
        self.success = False
        self.error_code = error_code


@contextmanager
def track_operation(operation: str, claim_id: str | None = None):
    """Time the block and record its outcome on the global metrics.

    The block succeeds unless it raises or calls `outcome.fail(code)`.
    An exception's `code` attribute (ClaimError) becomes the error code.
    """
    outcome = _Outcome()
    start = time.perf_counter()
    try:
        yield outcome
    except Exception as e:
        outcome.fail(getattr(e, "code", type(e).__name__))
        raise
    finally:
        latency_ms = (time.perf_counter() - start) * 1000
        get_metrics().record(
            operation,
            outcome.success,
            latency_ms=latency_ms,
            claim_id=claim_id,
            error_code=outcome.error_code,
        )

"""Pydantic models for claims, airlines, and filing/refund outcomes."""

from flight_claims.models.airline import (
    AirlineConfig,
    CompensationBand,
    SubmissionMethod,
)
from flight_claims.models.claim import (
    FILED_STATUSES,
    PRE_FILING_STATUSES,
    TERMINAL_STATUSES,
    BatchRefundSummary,
    Claim,
    ClaimInput,
    ClaimStatus,
    FilingMethod,
    FilingOutcome,
    FilingStats,
    FollowUpType,
    GatewayRefund,
    RefundDecision,
    RefundResult,
    RefundStatus,
    RefundTrigger,
    ValidationResult,
    parse_delay_hours,
)
from flight_claims.models.notification import DeliveryEvent, DeliverySignal

__all__ = [
    "AirlineConfig",
    "BatchRefundSummary",
    "Claim",
    "ClaimInput",
    "ClaimStatus",
    "CompensationBand",
    "DeliveryEvent",
    "DeliverySignal",
    "FILED_STATUSES",
    "FilingMethod",
    "FilingOutcome",
    "FilingStats",
    "FollowUpType",
    "GatewayRefund",
    "PRE_FILING_STATUSES",
    "RefundDecision",
    "RefundResult",
    "RefundStatus",
    "RefundTrigger",
    "SubmissionMethod",
    "TERMINAL_STATUSES",
    "ValidationResult",
    "parse_delay_hours",
]

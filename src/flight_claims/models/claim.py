"""Pydantic models for claims, validation results, filing and refund outcomes."""

import re
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class ClaimStatus(str, Enum):
    """Lifecycle status of a claim."""

    DRAFT = "draft"
    VALIDATED = "validated"
    FILED = "filed"
    FOLLOW_UP = "follow_up"
    RESOLVED = "resolved"
    REJECTED = "rejected"


# Claims not yet sent to the airline
PRE_FILING_STATUSES = frozenset({ClaimStatus.DRAFT, ClaimStatus.VALIDATED})
# Claims that carry an airline reference
FILED_STATUSES = frozenset(
    {ClaimStatus.FILED, ClaimStatus.FOLLOW_UP, ClaimStatus.RESOLVED}
)
TERMINAL_STATUSES = frozenset({ClaimStatus.RESOLVED, ClaimStatus.REJECTED})


class FollowUpType(str, Enum):
    INITIAL = "initial"
    REMINDER = "reminder"
    ESCALATION = "escalation"
    FINAL = "final"


class FilingMethod(str, Enum):
    """How a claim was delivered to the airline."""

    EMAIL = "email"
    WEB_FORM = "web_form"
    POSTAL = "postal"


class RefundTrigger(str, Enum):
    """Business events that can justify an automatic refund.

    Declaration order is the evaluation priority used when no trigger is given.
    """

    MANUAL_OVERRIDE = "manual_override"
    CUSTOMER_REQUEST = "customer_request"
    AIRLINE_REJECTED = "airline_rejected"
    DUPLICATE_CLAIM = "duplicate_claim"
    FILING_DEADLINE_MISSED = "filing_deadline_missed"
    INSUFFICIENT_DOCUMENTATION = "insufficient_documentation"
    NO_RESPONSE_TIMEOUT = "no_response_timeout"


class RefundStatus(str, Enum):
    PROCESSING = "processing"
    PENDING = "pending"
    SUCCEEDED = "succeeded"


_DELAY_NUMBER = re.compile(r"(\d+(?:\.\d+)?)")


def parse_delay_hours(delay_duration: str | float | int | None) -> float:
    """Parse a delay as entered ("4 hours", "200 minutes", "3.5") into hours. 0 if unparseable."""
    if delay_duration is None:
        return 0.0
    if isinstance(delay_duration, (int, float)):
        return float(delay_duration)
    match = _DELAY_NUMBER.search(delay_duration)
    if not match:
        return 0.0
    value = float(match.group(1))
    if "minute" in delay_duration.lower():
        return value / 60
    return value


class ClaimInput(BaseModel):
    """Intake payload for a new claim."""

    first_name: Optional[str] = Field(default=None, description="Passenger first name")
    last_name: Optional[str] = Field(default=None, description="Passenger last name")
    email: str = Field(..., description="Passenger email")
    flight_number: str = Field(..., description="Flight number (e.g. FR1234)")
    airline: str = Field(..., description="Airline IATA code or name")
    departure_date: str = Field(..., description="Departure date (YYYY-MM-DD)")
    departure_airport: Optional[str] = Field(default=None, description="IATA code")
    arrival_airport: Optional[str] = Field(default=None, description="IATA code")
    delay_duration: Optional[str] = Field(
        default=None, description="Delay as entered, e.g. '4 hours'"
    )
    distance_km: Optional[float] = Field(default=None, description="Great-circle route distance")
    payment_reference: Optional[str] = Field(
        default=None, description="Payment intent id of the service fee"
    )
    boarding_pass_uploaded: bool = False
    delay_proof_uploaded: bool = False
    submitted_at: Optional[datetime] = Field(
        default=None, description="Submission time; defaults to now"
    )


class Claim(BaseModel):
    """Snapshot of a claim record as read from the record store."""

    model_config = ConfigDict(extra="ignore")

    record_id: Optional[int] = Field(default=None, description="Store row id")
    claim_id: str = Field(..., description="Stable claim identifier")

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    flight_number: Optional[str] = None
    airline: Optional[str] = None
    departure_date: Optional[str] = None
    departure_airport: Optional[str] = None
    arrival_airport: Optional[str] = None
    delay_duration: Optional[str] = None
    distance_km: Optional[float] = None
    payment_reference: Optional[str] = None
    submitted_at: Optional[datetime] = None

    status: ClaimStatus = ClaimStatus.DRAFT
    boarding_pass_uploaded: bool = False
    delay_proof_uploaded: bool = False

    airline_reference: Optional[str] = None
    filed_by: Optional[str] = None
    filing_method: Optional[FilingMethod] = None
    validated_at: Optional[datetime] = None
    filed_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None

    follow_up_date: Optional[date] = None
    follow_up_type: Optional[FollowUpType] = None
    follow_up_notes: Optional[str] = None

    manual_filing_required: bool = False
    manual_filing_reason: Optional[str] = None

    manual_refund_requested: bool = False
    refund_requested_at: Optional[datetime] = None
    refund_status: Optional[RefundStatus] = None
    refund_amount: Optional[Decimal] = None
    refund_id: Optional[str] = None
    stripe_refund_id: Optional[str] = None
    refund_trigger: Optional[RefundTrigger] = None
    refund_processed_at: Optional[datetime] = None
    refund_processed_by: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def delay_hours(self) -> float:
        return parse_delay_hours(self.delay_duration)

    @property
    def is_filed(self) -> bool:
        return self.status in FILED_STATUSES

    @property
    def is_refunded(self) -> bool:
        return self.refund_id is not None


class ValidationResult(BaseModel):
    """Outcome of checking whether a claim may be filed. Not persisted."""

    claim_id: str
    eligible: bool = Field(..., description="True iff no reasons were collected")
    reasons: list[str] = Field(default_factory=list)
    missing_fields: list[str] = Field(default_factory=list)
    missing_documents: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(
        default_factory=list, description="Non-blocking observations"
    )


class FilingOutcome(BaseModel):
    """Per-claim entry of an automatic filing batch."""

    claim_id: str
    success: bool
    reasons: list[str] = Field(default_factory=list)
    airline_reference: Optional[str] = None
    requires_manual_filing: bool = False
    error_code: Optional[str] = None


class FilingStats(BaseModel):
    """Dashboard counters derived from the record store."""

    total_claims: int = 0
    total_filed: int = 0
    pending_validation: int = 0
    pending_filing: int = 0
    average_time_to_file_hours: float = 0.0
    needing_follow_up: int = 0
    overdue: int = 0
    by_airline: dict[str, int] = Field(default_factory=dict)
    by_status: dict[str, int] = Field(default_factory=dict)


class RefundDecision(BaseModel):
    """Eligibility of a claim for an automatic refund. Not persisted."""

    claim_id: str
    eligible: bool
    amount: Optional[Decimal] = Field(
        default=None, description="Refund amount; None unless eligible"
    )
    trigger: Optional[RefundTrigger] = Field(
        default=None, description="Trigger whose precondition held"
    )
    reasons: list[str] = Field(default_factory=list)
    details: dict[str, Any] = Field(default_factory=dict)


class GatewayRefund(BaseModel):
    """What the payment gateway returns for a refund call."""

    external_refund_id: str
    status: str = Field(default="succeeded", description="succeeded or pending")
    amount: Optional[Decimal] = None


class RefundResult(BaseModel):
    """Outcome of executing (or declining) a refund for one claim."""

    claim_id: str
    success: bool
    refund_id: Optional[str] = None
    external_refund_id: Optional[str] = None
    amount: Optional[Decimal] = None
    decision: Optional[RefundDecision] = None
    error: Optional[str] = None
    error_code: Optional[str] = None


class BatchRefundSummary(BaseModel):
    """Outcome of a refund batch; one result per input claim id, in input order."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    total_amount: Decimal = Decimal("0.00")
    results: list[RefundResult] = Field(default_factory=list)

"""Pydantic models for airline submission and compensation configuration."""

from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class SubmissionMethod(str, Enum):
    """How an airline accepts compensation claims."""

    EMAIL = "email"
    WEB_FORM = "web_form"
    POSTAL = "postal"


class CompensationBand(BaseModel):
    """One distance band of a compensation table."""

    max_distance_km: Optional[float] = Field(
        default=None, description="Upper bound (inclusive); None for the open-ended band"
    )
    amount: Decimal = Field(..., description="Compensation for the band")
    reduced_amount: Optional[Decimal] = Field(
        default=None, description="Amount paid when the delay is below full_amount_delay_hours"
    )
    full_amount_delay_hours: Optional[float] = Field(
        default=None, description="Delay needed for the full amount"
    )


class AirlineConfig(BaseModel):
    """Claim submission requirements for one airline."""

    airline_code: str = Field(..., description="IATA airline code")
    airline_name: str
    submission_method: SubmissionMethod
    claim_email: Optional[str] = None
    claim_form_url: Optional[str] = None
    minimum_delay_hours: float = Field(
        default=3.0, description="Shortest delay that makes a claim valid"
    )
    required_documents: list[str] = Field(
        default_factory=lambda: ["boarding_pass", "delay_proof"]
    )
    follow_up_schedule_weeks: list[int] = Field(default_factory=lambda: [2, 4, 8])
    compensation_table: list[CompensationBand] = Field(default_factory=list)
    aliases: list[str] = Field(default_factory=list)
    is_active: bool = True

"""Validation engine: decides whether a claim may be filed with the airline."""

import logging
import re
from datetime import date

from flight_claims.exceptions import NotFoundError
from flight_claims.models.claim import (
    TERMINAL_STATUSES,
    Claim,
    ValidationResult,
)
from flight_claims.observability import track_operation
from flight_claims.services.interfaces import AirlineConfigSource, ClaimStore

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = (
    "first_name",
    "last_name",
    "email",
    "flight_number",
    "airline",
    "departure_date",
    "departure_airport",
    "arrival_airport",
    "delay_duration",
)

# Document name -> upload flag on the claim
DOCUMENT_FLAGS = {
    "boarding_pass": "boarding_pass_uploaded",
    "delay_proof": "delay_proof_uploaded",
}

_FLIGHT_NUMBER = re.compile(r"^[A-Z0-9]{2}\s?\d{1,4}[A-Z]?$", re.IGNORECASE)
_IATA_AIRPORT = re.compile(r"^[A-Z]{3}$")


def _is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _valid_date(value: str) -> bool:
    try:
        date.fromisoformat(value.strip())
        return True
    except ValueError:
        return False


class ClaimValidator:
    """Checks a claim snapshot against filing requirements.

    Every rule runs; a failed rule adds a reason rather than stopping the check,
    so the result lists every problem at once.
    """

    def __init__(self, store: ClaimStore, airlines: AirlineConfigSource):
        self._store = store
        self._airlines = airlines

    def validate(self, claim_id: str) -> ValidationResult:
        """Validate a stored claim. Raises NotFoundError if the claim does not exist."""
        with track_operation("validate", claim_id=claim_id):
            claim = self._store.get_claim(claim_id)
            if claim is None:
                raise NotFoundError(f"Claim not found: {claim_id}", claim_id=claim_id)
            result = self.check(claim)
        logger.info(
            "Validated claim %s: eligible=%s reasons=%d",
            claim_id,
            result.eligible,
            len(result.reasons),
        )
        return result

    def check(self, claim: Claim) -> ValidationResult:
        reasons: list[str] = []
        missing_fields: list[str] = []
        missing_documents: list[str] = []
        warnings: list[str] = []

        for field in REQUIRED_FIELDS:
            if _is_blank(getattr(claim, field)):
                missing_fields.append(field)
        if missing_fields:
            reasons.append(f"Missing required fields: {', '.join(missing_fields)}")

        if not _is_blank(claim.flight_number) and not _FLIGHT_NUMBER.match(
            claim.flight_number.strip()
        ):
            reasons.append(f"Invalid flight number: {claim.flight_number}")

        departure = (claim.departure_airport or "").strip().upper()
        arrival = (claim.arrival_airport or "").strip().upper()
        if departure and not _IATA_AIRPORT.match(departure):
            reasons.append(f"Invalid departure airport code: {claim.departure_airport}")
        if arrival and not _IATA_AIRPORT.match(arrival):
            reasons.append(f"Invalid arrival airport code: {claim.arrival_airport}")
        if departure and departure == arrival:
            reasons.append("Departure and arrival airports are the same")

        if not _is_blank(claim.departure_date) and not _valid_date(claim.departure_date):
            reasons.append(f"Invalid departure date: {claim.departure_date}")

        if _is_blank(claim.payment_reference):
            reasons.append("Payment not confirmed")

        airline_config = self._airlines.get_config(claim.airline)
        if airline_config is None:
            if not _is_blank(claim.airline):
                reasons.append(f"No configuration for airline: {claim.airline}")
            required_documents = ["boarding_pass"]
        else:
            if not airline_config.is_active:
                warnings.append(f"Airline {airline_config.airline_code} is marked inactive")
            if not _is_blank(claim.delay_duration):
                delay = claim.delay_hours
                if delay < airline_config.minimum_delay_hours:
                    reasons.append(
                        f"Delay of {delay:g}h is below the {airline_config.minimum_delay_hours:g}h "
                        f"minimum for {airline_config.airline_name}"
                    )
            required_documents = ["boarding_pass"] + [
                d for d in airline_config.required_documents if d != "boarding_pass"
            ]

        for document in required_documents:
            flag = DOCUMENT_FLAGS.get(document)
            if flag is None:
                warnings.append(f"Cannot check document type: {document}")
                continue
            if not getattr(claim, flag):
                missing_documents.append(document)
        for document in missing_documents:
            reasons.append(f"Missing required document: {document}")

        if claim.distance_km is None:
            warnings.append("Route distance unknown; refund amount cannot be computed")

        if claim.status in TERMINAL_STATUSES:
            reasons.append(f"Claim is closed (status: {claim.status.value})")
        elif claim.is_filed:
            reasons.append(f"Claim already filed (status: {claim.status.value})")

        return ValidationResult(
            claim_id=claim.claim_id,
            eligible=not reasons,
            reasons=reasons,
            missing_fields=missing_fields,
            missing_documents=missing_documents,
            warnings=warnings,
        )

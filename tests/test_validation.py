"""Tests for the claim validation engine."""

import pytest

from flight_claims.exceptions import NotFoundError
from flight_claims.models.claim import ClaimStatus
from flight_claims.services.validation import ClaimValidator


@pytest.fixture
def validator(repo, airlines):
    return ClaimValidator(repo, airlines)


def test_complete_claim_is_eligible(validator, make_claim):
    result = validator.validate(make_claim())
    assert result.eligible is True
    assert result.reasons == []
    assert result.missing_fields == []


def test_unknown_claim_raises_not_found(validator):
    with pytest.raises(NotFoundError):
        validator.validate("CLM-MISSING")


def test_reports_every_problem_at_once(validator, make_claim):
    claim_id = make_claim(
        first_name=None,
        flight_number="not a flight",
        departure_airport="DUBLIN",
        departure_date="2026-13-45",
        payment_reference=None,
    )
    result = validator.validate(claim_id)
    assert result.eligible is False
    assert result.missing_fields == ["first_name"]
    joined = " | ".join(result.reasons)
    assert "Missing required fields: first_name" in joined
    assert "Invalid flight number" in joined
    assert "Invalid departure airport code" in joined
    assert "Invalid departure date" in joined
    assert "Payment not confirmed" in joined


def test_missing_documents_named_individually(validator, make_claim):
    claim_id = make_claim(boarding_pass_uploaded=False, delay_proof_uploaded=False)
    result = validator.validate(claim_id)
    assert result.eligible is False
    assert result.missing_documents == ["boarding_pass", "delay_proof"]
    assert "Missing required document: boarding_pass" in result.reasons
    assert "Missing required document: delay_proof" in result.reasons


def test_delay_proof_only_when_airline_requires_it(repo, make_claim):
    from flight_claims.config.airlines import BUILTIN_AIRLINES
    from flight_claims.config.airlines import AirlineConfigProvider

    relaxed = BUILTIN_AIRLINES["FR"].model_copy(update={"required_documents": ["boarding_pass"]})
    validator = ClaimValidator(repo, AirlineConfigProvider(configs={"FR": relaxed}))
    result = validator.validate(make_claim(delay_proof_uploaded=False))
    assert result.eligible is True


@pytest.mark.parametrize(
    "delay,eligible",
    [("2 hours", False), ("179 minutes", False), ("3 hours", True), ("200 minutes", True)],
)
def test_delay_threshold(validator, make_claim, delay, eligible):
    result = validator.validate(make_claim(delay_duration=delay))
    assert result.eligible is eligible
    if not eligible:
        assert any("below the 3h minimum" in r for r in result.reasons)


def test_same_departure_and_arrival_rejected(validator, make_claim):
    result = validator.validate(make_claim(arrival_airport="dub"))
    assert "Departure and arrival airports are the same" in result.reasons


def test_unknown_airline_is_a_reason(validator, make_claim):
    result = validator.validate(make_claim(airline="Oceanic"))
    assert result.eligible is False
    assert any("No configuration for airline" in r for r in result.reasons)


@pytest.mark.parametrize(
    "status,fragment",
    [
        (ClaimStatus.FILED, "already filed"),
        (ClaimStatus.FOLLOW_UP, "already filed"),
        (ClaimStatus.RESOLVED, "closed"),
        (ClaimStatus.REJECTED, "closed"),
    ],
)
def test_filed_or_closed_claims_not_eligible(validator, make_claim, status, fragment):
    claim_id = make_claim(fields={"status": status})
    result = validator.validate(claim_id)
    assert result.eligible is False
    assert any(fragment in r for r in result.reasons)


def test_validated_claim_still_eligible(validator, make_claim):
    claim_id = make_claim(fields={"status": ClaimStatus.VALIDATED})
    assert validator.validate(claim_id).eligible is True


def test_unknown_distance_is_only_a_warning(validator, make_claim):
    result = validator.validate(make_claim(distance_km=None))
    assert result.eligible is True
    assert any("distance" in w for w in result.warnings)


def test_flight_number_with_space_accepted(validator, make_claim):
    assert validator.validate(make_claim(flight_number="fr 1234")).eligible is True

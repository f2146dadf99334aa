"""Refund eligibility: trigger rules and compensation amounts.

`analyze_claim` is a pure function of a claim snapshot, the current time,
the airline configuration, and the claims sharing its flight. Triggers are
evaluated in RefundTrigger declaration order; the first one that holds
decides.
"""

import logging
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Iterable

from flight_claims.config.settings import get_refund_config
from flight_claims.exceptions import NotFoundError, ValidationError
from flight_claims.models.airline import AirlineConfig
from flight_claims.models.claim import (
    PRE_FILING_STATUSES,
    Claim,
    ClaimStatus,
    RefundDecision,
    RefundStatus,
    RefundTrigger,
)
from flight_claims.observability import track_operation
from flight_claims.services.interfaces import AirlineConfigSource, ClaimStore
from flight_claims.services.validation import DOCUMENT_FLAGS

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")

TRIGGER_PRIORITY: tuple[RefundTrigger, ...] = tuple(RefundTrigger)

TRIGGER_REASONS = {
    RefundTrigger.MANUAL_OVERRIDE: "Refund requested by an administrator",
    RefundTrigger.CUSTOMER_REQUEST: "Customer requested a refund within the request window",
    RefundTrigger.AIRLINE_REJECTED: "Claim rejected by airline",
    RefundTrigger.DUPLICATE_CLAIM: "Duplicate of an already refunded claim",
    RefundTrigger.FILING_DEADLINE_MISSED: "Claim not filed within the filing deadline",
    RefundTrigger.INSUFFICIENT_DOCUMENTATION: "Required documents still missing",
    RefundTrigger.NO_RESPONSE_TIMEOUT: "No airline response within the response window",
}


def _aware(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _hours(delta: timedelta) -> float:
    return delta.total_seconds() / 3600


def coerce_trigger(trigger: RefundTrigger | str | None) -> RefundTrigger | None:
    """Accept a RefundTrigger or its value. Raises ValidationError for unknown names."""
    if trigger is None or isinstance(trigger, RefundTrigger):
        return trigger
    if isinstance(trigger, str):
        try:
            return RefundTrigger(trigger.strip().lower())
        except ValueError:
            pass
    allowed = ", ".join(t.value for t in RefundTrigger)
    raise ValidationError(f"Unknown refund trigger: {trigger!r} (expected one of: {allowed})")


def compute_refund_amount(claim: Claim, airline_config: AirlineConfig | None) -> Decimal | None:
    """Compensation for the claim's delay and distance, or None if none is owed.

    None when the airline is unknown, the delay is below the airline minimum,
    the route distance is unknown, or no band covers the distance.
    """
    if airline_config is None or not airline_config.compensation_table:
        return None
    delay = claim.delay_hours
    if delay <= 0 or delay < airline_config.minimum_delay_hours:
        return None
    if claim.distance_km is None or claim.distance_km <= 0:
        return None

    bands = sorted(
        airline_config.compensation_table,
        key=lambda b: (b.max_distance_km is None, b.max_distance_km or 0),
    )
    for band in bands:
        if band.max_distance_km is None or claim.distance_km <= band.max_distance_km:
            amount = band.amount
            if (
                band.reduced_amount is not None
                and band.full_amount_delay_hours is not None
                and delay < band.full_amount_delay_hours
            ):
                amount = band.reduced_amount
            return Decimal(amount).quantize(CENTS, rounding=ROUND_HALF_UP)
    return None


def _no_amount_reason(claim: Claim, airline_config: AirlineConfig | None) -> str:
    if airline_config is None:
        return f"No airline configuration for {claim.airline}"
    if claim.delay_hours < airline_config.minimum_delay_hours:
        return (
            f"Delay of {claim.delay_hours:g}h is below the "
            f"{airline_config.minimum_delay_hours:g}h minimum"
        )
    if claim.distance_km is None:
        return "Route distance unknown"
    return "No compensation band applies"


def _missing_documents(claim: Claim, airline_config: AirlineConfig | None) -> list[str]:
    required = ["boarding_pass"]
    if airline_config is not None:
        required += [d for d in airline_config.required_documents if d != "boarding_pass"]
    return [
        d for d in required if d in DOCUMENT_FLAGS and not getattr(claim, DOCUMENT_FLAGS[d])
    ]


def _same_passenger_flight(claim: Claim, other: Claim) -> bool:
    return (
        other.claim_id != claim.claim_id
        and other.flight_number == claim.flight_number
        and other.departure_date == claim.departure_date
        and (other.email or "").strip().lower() == (claim.email or "").strip().lower()
    )


class _Context:
    """Everything a trigger rule may look at."""

    def __init__(self, claim, now, airline_config, siblings, config, explicit):
        self.claim = claim
        self.now = _aware(now)
        self.airline_config = airline_config
        self.siblings = siblings
        self.config = config
        self.explicit = explicit
        self.submitted_at = _aware(claim.submitted_at)
        self.filed_at = _aware(claim.filed_at)


def _manual_override(ctx: _Context) -> bool:
    return ctx.explicit or ctx.claim.manual_refund_requested


def _customer_request(ctx: _Context) -> bool:
    requested = _aware(ctx.claim.refund_requested_at)
    if requested is None or ctx.submitted_at is None:
        return False
    return _hours(requested - ctx.submitted_at) <= ctx.config["customer_request_window_hours"]


def _airline_rejected(ctx: _Context) -> bool:
    return ctx.claim.status == ClaimStatus.REJECTED and ctx.filed_at is not None


def _duplicate_claim(ctx: _Context) -> bool:
    return any(
        s.is_refunded and _same_passenger_flight(ctx.claim, s) for s in ctx.siblings
    )


def _filing_deadline_missed(ctx: _Context) -> bool:
    if ctx.submitted_at is None:
        return False
    deadline = ctx.config["filing_deadline_hours"]
    if ctx.filed_at is not None:
        return _hours(ctx.filed_at - ctx.submitted_at) > deadline
    return (
        ctx.claim.status in PRE_FILING_STATUSES
        and _hours(ctx.now - ctx.submitted_at) > deadline
    )


def _insufficient_documentation(ctx: _Context) -> bool:
    if ctx.claim.status not in PRE_FILING_STATUSES or ctx.submitted_at is None:
        return False
    if not _missing_documents(ctx.claim, ctx.airline_config):
        return False
    return _hours(ctx.now - ctx.submitted_at) > ctx.config["document_grace_hours"]


def _no_response_timeout(ctx: _Context) -> bool:
    if ctx.claim.status not in (ClaimStatus.FILED, ClaimStatus.FOLLOW_UP):
        return False
    if ctx.filed_at is None:
        return False
    return ctx.now - ctx.filed_at > timedelta(days=ctx.config["no_response_days"])


TRIGGER_RULES: dict[RefundTrigger, Callable[[_Context], bool]] = {
    RefundTrigger.MANUAL_OVERRIDE: _manual_override,
    RefundTrigger.CUSTOMER_REQUEST: _customer_request,
    RefundTrigger.AIRLINE_REJECTED: _airline_rejected,
    RefundTrigger.DUPLICATE_CLAIM: _duplicate_claim,
    RefundTrigger.FILING_DEADLINE_MISSED: _filing_deadline_missed,
    RefundTrigger.INSUFFICIENT_DOCUMENTATION: _insufficient_documentation,
    RefundTrigger.NO_RESPONSE_TIMEOUT: _no_response_timeout,
}


def analyze_claim(
    claim: Claim,
    trigger: RefundTrigger | None = None,
    *,
    now: datetime,
    airline_config: AirlineConfig | None,
    siblings: Iterable[Claim] = (),
    config: dict[str, Any] | None = None,
) -> RefundDecision:
    """Decide whether the claim may be refunded automatically.

    With a trigger, only that trigger's rule is checked. Without one, rules
    are checked in priority order and the first that holds is used.
    """
    config = config or get_refund_config()
    details: dict[str, Any] = {
        "status": claim.status.value,
        "delay_hours": claim.delay_hours,
        "distance_km": claim.distance_km,
    }
    submitted_at = _aware(claim.submitted_at)
    if submitted_at is not None:
        details["hours_since_submission"] = round(_hours(_aware(now) - submitted_at), 2)

    def ineligible(reason: str, matched: RefundTrigger | None = None, *extra: str):
        return RefundDecision(
            claim_id=claim.claim_id,
            eligible=False,
            trigger=matched,
            reasons=[reason, *extra],
            details=details,
        )

    if claim.is_refunded:
        return ineligible("Already refunded")
    if claim.refund_status == RefundStatus.PROCESSING:
        return ineligible("Refund already in progress")
    if not claim.payment_reference:
        return ineligible("No payment associated with claim")

    siblings = list(siblings)
    if trigger is not None:
        candidates = (trigger,)
    else:
        candidates = TRIGGER_PRIORITY

    ctx = _Context(
        claim,
        now,
        airline_config,
        siblings,
        config,
        explicit=trigger is RefundTrigger.MANUAL_OVERRIDE,
    )
    matched = None
    for candidate in candidates:
        if TRIGGER_RULES[candidate](ctx):
            matched = candidate
            break

    if matched is None:
        if trigger is not None:
            return ineligible(f"Trigger {trigger.value} does not apply to this claim")
        return ineligible("No automatic refund triggers met")

    if matched is RefundTrigger.INSUFFICIENT_DOCUMENTATION:
        details["missing_documents"] = _missing_documents(claim, airline_config)

    amount = compute_refund_amount(claim, airline_config)
    if amount is None or amount <= 0:
        return ineligible(
            TRIGGER_REASONS[matched],
            matched,
            f"No refundable amount: {_no_amount_reason(claim, airline_config)}",
        )

    return RefundDecision(
        claim_id=claim.claim_id,
        eligible=True,
        amount=amount,
        trigger=matched,
        reasons=[TRIGGER_REASONS[matched]],
        details=details,
    )


class RefundAnalyzer:
    """Reads claims from the store and applies the refund rules to them."""

    def __init__(
        self,
        store: ClaimStore,
        airlines: AirlineConfigSource,
        clock: Callable[[], datetime] | None = None,
    ):
        self._store = store
        self._airlines = airlines
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def analyze(
        self, claim_id: str, trigger: RefundTrigger | str | None = None
    ) -> RefundDecision:
        """Refund decision for a stored claim. Raises NotFoundError if it does not exist."""
        trigger = coerce_trigger(trigger)
        with track_operation("refund_analyze", claim_id=claim_id):
            claim = self._store.get_claim(claim_id)
            if claim is None:
                raise NotFoundError(f"Claim not found: {claim_id}", claim_id=claim_id)
            return self.analyze_snapshot(claim, trigger)

    def analyze_snapshot(self, claim: Claim, trigger: RefundTrigger | None = None) -> RefundDecision:
        decision = analyze_claim(
            claim,
            trigger,
            now=self._clock(),
            airline_config=self._airlines.get_config(claim.airline),
            siblings=self._siblings(claim),
        )
        logger.debug(
            "Refund decision for %s: eligible=%s trigger=%s amount=%s",
            claim.claim_id,
            decision.eligible,
            decision.trigger.value if decision.trigger else None,
            decision.amount,
        )
        return decision

    def _siblings(self, claim: Claim) -> list[Claim]:
        if not claim.flight_number or not claim.departure_date:
            return []
        return self._store.find_claims(
            flight_number=claim.flight_number, departure_date=claim.departure_date
        )

    def find_candidates(self) -> list[RefundDecision]:
        """Eligible decisions for every unrefunded claim with a payment, in store order."""
        claims = self._store.find_claims(
            lambda c: not c.is_refunded
            and c.refund_status is None
            and bool(c.payment_reference)
        )
        decisions = [self.analyze_snapshot(c) for c in claims]
        return [d for d in decisions if d.eligible]

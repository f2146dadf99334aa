"""Refund execution: turns a positive refund decision into one gateway refund.

At most one successful refund per claim:

1. An in-process lock keyed by claim id serializes callers in this process.
2. A conditional update reserves the claim (refund_status=processing) only if
   it still has no refund id and no refund in progress; this holds across
   processes sharing the store.
3. The gateway is called exactly once per reservation. A definite failure
   releases the reservation; a timeout keeps it, since the refund may still
   have gone through. A successful call is recorded in one update.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable

from flight_claims.config.settings import get_gateway_timeout
from flight_claims.db.constants import (
    AUDIT_REFUND_RELEASED,
    AUDIT_REFUND_RESERVED,
    AUDIT_REFUNDED,
)
from flight_claims.exceptions import (
    AlreadyRefundedError,
    ClaimError,
    ConflictError,
    DependencyError,
    DependencyTimeoutError,
    NotFoundError,
    ValidationError,
)
from flight_claims.models.claim import (
    PRE_FILING_STATUSES,
    Claim,
    ClaimStatus,
    RefundResult,
    RefundStatus,
    RefundTrigger,
)
from flight_claims.observability import log_claim_event, track_operation
from flight_claims.services.interfaces import AirlineConfigSource, ClaimStore, Notifier, PaymentGateway
from flight_claims.services.notifications import notify_best_effort
from flight_claims.services.refund_rules import RefundAnalyzer, coerce_trigger
from flight_claims.utils.locks import KeyedLock
from flight_claims.utils.sanitization import MAX_FILED_BY, sanitize_identifier
from flight_claims.utils.timeouts import call_with_timeout

logger = logging.getLogger(__name__)

_RECORD_ATTEMPTS = 3

# Shared by every coordinator built without an explicit lock
_REFUND_LOCK = KeyedLock()


def _generate_refund_id() -> str:
    return f"RFD-{uuid.uuid4().hex[:8].upper()}"


def status_after_refund(status: ClaimStatus) -> ClaimStatus:
    """Unfiled claims close as rejected, filed ones as resolved; closed claims keep their status."""
    if status in PRE_FILING_STATUSES:
        return ClaimStatus.REJECTED
    if status in (ClaimStatus.FILED, ClaimStatus.FOLLOW_UP):
        return ClaimStatus.RESOLVED
    return status


def _raise_for_refund_state(claim: Claim) -> None:
    if claim.is_refunded:
        raise AlreadyRefundedError(
            f"Claim already refunded ({claim.refund_id})", claim_id=claim.claim_id
        )
    if claim.refund_status == RefundStatus.PROCESSING:
        raise ConflictError("A refund for this claim is already in progress", claim_id=claim.claim_id)


class RefundCoordinator:
    """Executes refunds against the payment gateway.

    Args:
        store: Record store.
        airlines: Airline configuration lookup (compensation tables).
        gateway: Payment gateway client; called at most once per execution.
        notifier: Optional customer notifier; failures never affect the result.
        clock: Returns the current UTC time.
        lock: Per-claim lock shared by every coordinator in the process.
        gateway_timeout: Seconds to wait for the gateway (default from settings).
    """

    def __init__(
        self,
        store: ClaimStore,
        airlines: AirlineConfigSource,
        gateway: PaymentGateway,
        notifier: Notifier | None = None,
        clock: Callable[[], datetime] | None = None,
        lock: KeyedLock | None = None,
        gateway_timeout: float | None = None,
    ):
        self._store = store
        self._gateway = gateway
        self._notifier = notifier
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = lock or _REFUND_LOCK
        self._gateway_timeout = gateway_timeout if gateway_timeout is not None else get_gateway_timeout()
        self._analyzer = RefundAnalyzer(store, airlines, clock=self._clock)

    def execute(
        self,
        claim_id: str,
        trigger: RefundTrigger | str | None = None,
        processed_by: str = "system",
    ) -> RefundResult:
        """Refund one claim if a trigger makes it eligible.

        Returns success=False (no gateway call) when the claim is not eligible.
        Raises AlreadyRefundedError if the claim already has a refund id,
        ConflictError if another refund is in progress, NotFoundError for an
        unknown claim, DependencyError when the gateway fails and
        DependencyTimeoutError when it does not answer in time (the claim then
        stays in processing until reviewed).
        """
        if not claim_id or not isinstance(claim_id, str) or not claim_id.strip():
            raise ValidationError("Claim id is required")
        processor = sanitize_identifier(processed_by, MAX_FILED_BY)
        if not processor:
            raise ValidationError("processed_by is required", claim_id=claim_id)
        trigger = coerce_trigger(trigger)

        with track_operation("refund_execute", claim_id=claim_id) as outcome:
            with self._lock.hold(claim_id):
                result = self._execute_locked(claim_id, trigger, processor)
            if not result.success:
                outcome.fail("not_eligible")
        return result

    def _execute_locked(
        self, claim_id: str, trigger: RefundTrigger | None, processed_by: str
    ) -> RefundResult:
        claim = self._store.get_claim(claim_id)
        if claim is None:
            raise NotFoundError(f"Claim not found: {claim_id}", claim_id=claim_id)
        _raise_for_refund_state(claim)

        decision = self._analyzer.analyze_snapshot(claim, trigger)
        if not decision.eligible:
            logger.info("Claim %s not eligible for refund: %s", claim_id, "; ".join(decision.reasons))
            return RefundResult(
                claim_id=claim_id,
                success=False,
                decision=decision,
                error="; ".join(decision.reasons),
                error_code="not_eligible",
            )

        previous_refund_status = claim.refund_status
        reserved = self._store.update_claim(
            claim_id,
            {"refund_status": RefundStatus.PROCESSING},
            expected={"refund_id": None, "refund_status": previous_refund_status},
            audit_action=AUDIT_REFUND_RESERVED,
            audit_details=f"Refund of {decision.amount} reserved ({decision.trigger.value})",
        )
        if not reserved:
            current = self._store.get_claim(claim_id)
            if current is None:
                raise NotFoundError(f"Claim not found: {claim_id}", claim_id=claim_id)
            _raise_for_refund_state(current)
            raise ConflictError("Claim changed while reserving the refund", claim_id=claim_id)

        metadata = {
            "claim_id": claim_id,
            "trigger": decision.trigger.value,
            "processed_by": processed_by,
        }
        try:
            gateway_refund = call_with_timeout(
                self._gateway.refund,
                claim.payment_reference,
                decision.amount,
                metadata,
                timeout=self._gateway_timeout,
                description="payment gateway refund",
                claim_id=claim_id,
            )
        except DependencyTimeoutError:
            # The call may still succeed; keep the reservation so it is never repeated
            logger.critical(
                "Gateway refund for %s timed out with unknown outcome; claim left in "
                "processing state for manual review",
                claim_id,
            )
            raise
        except Exception as e:
            self._release(claim_id, previous_refund_status, e)
            if isinstance(e, DependencyError):
                raise
            raise DependencyError(f"Payment gateway refund failed: {e}", claim_id=claim_id) from e

        return self._record_success(claim, decision, gateway_refund, processed_by)

    def _release(self, claim_id: str, previous: RefundStatus | None, error: Exception) -> None:
        try:
            released = self._store.update_claim(
                claim_id,
                {"refund_status": previous},
                expected={"refund_id": None, "refund_status": RefundStatus.PROCESSING},
                audit_action=AUDIT_REFUND_RELEASED,
                audit_details=f"Gateway refund failed: {error}",
            )
        except ClaimError as release_error:
            released = False
            logger.error("Could not release refund reservation for %s: %s", claim_id, release_error)
        if not released:
            logger.critical(
                "Refund reservation for %s left in processing state; needs manual review",
                claim_id,
            )

    def _refund_fields(
        self, claim: Claim, decision, gateway_refund, processed_by: str, refund_id: str, now: datetime
    ) -> dict[str, Any]:
        """Record columns for a refund, with the status change derived from the claim's current status."""
        gateway_status = (gateway_refund.status or "").lower()
        new_status = status_after_refund(claim.status)
        fields: dict[str, Any] = {
            "refund_id": refund_id,
            "stripe_refund_id": gateway_refund.external_refund_id,
            "refund_amount": decision.amount,
            "refund_trigger": decision.trigger,
            "refund_processed_at": now,
            "refund_processed_by": processed_by,
            "refund_status": (
                RefundStatus.PENDING if gateway_status == "pending" else RefundStatus.SUCCEEDED
            ),
            "status": new_status,
        }
        if new_status != claim.status:
            if new_status == ClaimStatus.REJECTED:
                fields["rejected_at"] = now
            elif new_status == ClaimStatus.RESOLVED:
                fields.update(
                    resolved_at=now, follow_up_date=None, follow_up_type=None, follow_up_notes=None
                )
        return fields

    def _record_success(self, claim: Claim, decision, gateway_refund, processed_by: str) -> RefundResult:
        claim_id = claim.claim_id
        refund_id = _generate_refund_id()
        now = self._clock()
        audit_details = (
            f"Refunded {decision.amount} ({decision.trigger.value}) by {processed_by}; "
            f"gateway refund {gateway_refund.external_refund_id}"
        )

        recorded = False
        current: Claim | None = claim
        fields: dict[str, Any] = {}
        try:
            # Status may change while the gateway call runs; recompute from a fresh read
            for _ in range(_RECORD_ATTEMPTS):
                fields = self._refund_fields(current, decision, gateway_refund, processed_by, refund_id, now)
                recorded = self._store.update_claim(
                    claim_id,
                    fields,
                    expected={
                        "refund_id": None,
                        "refund_status": RefundStatus.PROCESSING,
                        "status": current.status,
                    },
                    audit_action=AUDIT_REFUNDED,
                    audit_details=audit_details,
                )
                if recorded:
                    break
                current = self._store.get_claim(claim_id)
                if (
                    current is None
                    or current.refund_id is not None
                    or current.refund_status != RefundStatus.PROCESSING
                ):
                    break
                logger.info(
                    "Claim %s changed status to %s during refund; recording against it",
                    claim_id,
                    current.status.value,
                )
        except ClaimError as e:
            recorded = False
            logger.error("Recording refund for %s failed: %s", claim_id, e)
        if not recorded:
            # Money moved but the record did not; the claim stays reserved so it is never refunded again
            logger.critical(
                "Gateway refund %s for claim %s succeeded but was not recorded",
                gateway_refund.external_refund_id,
                claim_id,
            )
            raise DependencyError(
                f"Refund {gateway_refund.external_refund_id} succeeded but could not be recorded",
                claim_id=claim_id,
            )

        log_claim_event(
            logger,
            "refund_executed",
            claim_id=claim_id,
            refund_id=refund_id,
            external_refund_id=gateway_refund.external_refund_id,
            amount=str(decision.amount),
            trigger=decision.trigger.value,
        )
        notify_best_effort(
            getattr(self._notifier, "refund_processed", None),
            current.model_copy(update=fields),
            decision.amount,
            gateway_refund.external_refund_id,
            description="refund_processed notification",
            claim_id=claim_id,
        )
        return RefundResult(
            claim_id=claim_id,
            success=True,
            refund_id=refund_id,
            external_refund_id=gateway_refund.external_refund_id,
            amount=decision.amount,
            decision=decision,
        )

    @property
    def analyzer(self) -> RefundAnalyzer:
        return self._analyzer

"""Tests for refund execution against the payment gateway."""

import threading
from decimal import Decimal

import pytest

from flight_claims.db.constants import (
    AUDIT_REFUND_RELEASED,
    AUDIT_REFUND_RESERVED,
    AUDIT_REFUNDED,
)
from flight_claims.exceptions import (
    AlreadyRefundedError,
    ConflictError,
    DependencyError,
    DependencyTimeoutError,
    NotFoundError,
    ValidationError,
)
from flight_claims.models.claim import ClaimStatus, RefundStatus, RefundTrigger
from flight_claims.services.filing import FilingService
from flight_claims.services.refunds import RefundCoordinator, status_after_refund
from flight_claims.utils.locks import KeyedLock


@pytest.fixture
def coordinator(repo, airlines, gateway, notifier, clock):
    return RefundCoordinator(repo, airlines, gateway, notifier=notifier, clock=clock)


@pytest.fixture
def refundable(make_claim):
    """A draft claim flagged for a manual refund (250.00 under EU261)."""
    return make_claim(fields={"manual_refund_requested": True})


class TestExecute:
    def test_successful_refund(self, coordinator, repo, gateway, clock, refundable):
        result = coordinator.execute(refundable, processed_by="ops@example.com")
        assert result.success is True
        assert result.amount == Decimal("250.00")
        assert result.refund_id.startswith("RFD-")
        assert result.external_refund_id == "re_0001"
        assert gateway.calls == [
            (
                "pi_test_123",
                Decimal("250.00"),
                {
                    "claim_id": refundable,
                    "trigger": "manual_override",
                    "processed_by": "ops@example.com",
                },
            )
        ]

        claim = repo.get_claim(refundable)
        assert claim.refund_id == result.refund_id
        assert claim.stripe_refund_id == "re_0001"
        assert claim.refund_amount == Decimal("250.00")
        assert claim.refund_trigger == RefundTrigger.MANUAL_OVERRIDE
        assert claim.refund_status == RefundStatus.SUCCEEDED
        assert claim.refund_processed_by == "ops@example.com"
        assert claim.refund_processed_at == clock()
        assert claim.status == ClaimStatus.REJECTED
        assert claim.rejected_at == clock()

        actions = [h["action"] for h in repo.get_claim_history(refundable)]
        assert actions[-2:] == [AUDIT_REFUND_RESERVED, AUDIT_REFUNDED]

    def test_filed_claim_resolves(self, coordinator, repo, clock, make_claim):
        claim_id = make_claim(
            fields={
                "status": ClaimStatus.FOLLOW_UP,
                "airline_reference": "FR-REF-1",
                "filed_at": clock(),
                "follow_up_date": "2026-04-01",
                "follow_up_type": "reminder",
            }
        )
        result = coordinator.execute(claim_id, RefundTrigger.MANUAL_OVERRIDE)
        assert result.success is True
        claim = repo.get_claim(claim_id)
        assert claim.status == ClaimStatus.RESOLVED
        assert claim.resolved_at == clock()
        assert claim.follow_up_date is None
        assert claim.airline_reference == "FR-REF-1"

    def test_status_change_during_gateway_call_is_kept(self, repo, airlines, clock, make_gateway, make_claim):
        claim_id = make_claim(
            fields={
                "status": ClaimStatus.FILED,
                "airline_reference": "FR-REF-2",
                "filed_at": clock(),
                "manual_refund_requested": True,
            }
        )
        filing = FilingService(repo, airlines, clock=clock)
        gateway = make_gateway(on_refund=lambda metadata: filing.update_status(metadata["claim_id"], "rejected"))
        coordinator = RefundCoordinator(repo, airlines, gateway, clock=clock)

        result = coordinator.execute(claim_id)
        assert result.success is True
        claim = repo.get_claim(claim_id)
        assert claim.status == ClaimStatus.REJECTED
        assert claim.airline_reference is None
        assert claim.resolved_at is None
        assert claim.refund_id == result.refund_id
        assert claim.refund_status == RefundStatus.SUCCEEDED

    def test_pending_gateway_status(self, repo, airlines, clock, make_gateway, refundable):
        coordinator = RefundCoordinator(repo, airlines, make_gateway(status="pending"), clock=clock)
        assert coordinator.execute(refundable).success is True
        assert repo.get_claim(refundable).refund_status == RefundStatus.PENDING

    def test_not_eligible_makes_no_gateway_call(self, coordinator, repo, gateway, make_claim):
        claim_id = make_claim()
        result = coordinator.execute(claim_id)
        assert result.success is False
        assert result.error_code == "not_eligible"
        assert "No automatic refund triggers met" in result.error
        assert gateway.calls == []
        assert repo.get_claim(claim_id).refund_status is None

    def test_below_threshold_not_refunded(self, coordinator, gateway, make_claim):
        claim_id = make_claim(delay_duration="2 hours")
        result = coordinator.execute(claim_id, "manual_override")
        assert result.success is False
        assert result.decision.amount is None
        assert gateway.calls == []

    def test_already_refunded_raises_without_gateway_call(self, coordinator, gateway, refundable):
        coordinator.execute(refundable)
        with pytest.raises(AlreadyRefundedError) as exc_info:
            coordinator.execute(refundable, RefundTrigger.MANUAL_OVERRIDE)
        assert exc_info.value.code == "already_refunded"
        assert len(gateway.calls) == 1

    def test_refund_in_progress_conflicts(self, coordinator, gateway, make_claim):
        claim_id = make_claim(
            fields={"manual_refund_requested": True, "refund_status": RefundStatus.PROCESSING}
        )
        with pytest.raises(ConflictError):
            coordinator.execute(claim_id)
        assert gateway.calls == []

    def test_unknown_claim(self, coordinator):
        with pytest.raises(NotFoundError):
            coordinator.execute("CLM-MISSING")

    @pytest.mark.parametrize(
        "claim_id,trigger,processed_by",
        [
            ("", None, "system"),
            ("   ", None, "system"),
            ("CLM-1", None, ""),
            ("CLM-1", "not_a_trigger", "system"),
        ],
    )
    def test_invalid_input(self, coordinator, gateway, claim_id, trigger, processed_by):
        with pytest.raises(ValidationError):
            coordinator.execute(claim_id, trigger, processed_by)
        assert gateway.calls == []

    def test_notifier_failure_does_not_fail_refund(self, coordinator, notifier, refundable):
        notifier.fail = True
        result = coordinator.execute(refundable)
        assert result.success is True
        assert notifier.events == [("refund_processed", refundable, Decimal("250.00"), "re_0001")]


class TestGatewayFailures:
    def test_gateway_error_releases_reservation(self, repo, airlines, clock, make_gateway, refundable):
        gateway = make_gateway(fail_with=RuntimeError("card_declined"))
        coordinator = RefundCoordinator(repo, airlines, gateway, clock=clock)
        with pytest.raises(DependencyError) as exc_info:
            coordinator.execute(refundable)
        assert "card_declined" in exc_info.value.message

        claim = repo.get_claim(refundable)
        assert claim.refund_id is None
        assert claim.refund_status is None
        assert claim.status == ClaimStatus.DRAFT
        actions = [h["action"] for h in repo.get_claim_history(refundable)]
        assert actions[-2:] == [AUDIT_REFUND_RESERVED, AUDIT_REFUND_RELEASED]

    def test_failed_refund_can_be_retried(self, repo, airlines, clock, make_gateway, refundable):
        gateway = make_gateway(fail_with=RuntimeError("network down"))
        coordinator = RefundCoordinator(repo, airlines, gateway, clock=clock)
        with pytest.raises(DependencyError):
            coordinator.execute(refundable)
        gateway.fail_with = None
        assert coordinator.execute(refundable).success is True
        assert len(gateway.calls) == 2

    def test_gateway_timeout_keeps_claim_reserved(self, repo, airlines, clock, make_gateway, refundable):
        gateway = make_gateway(delay=0.5)
        coordinator = RefundCoordinator(repo, airlines, gateway, clock=clock, gateway_timeout=0.05)
        with pytest.raises(DependencyTimeoutError) as exc_info:
            coordinator.execute(refundable)
        assert "timed out" in exc_info.value.message

        claim = repo.get_claim(refundable)
        assert claim.refund_status == RefundStatus.PROCESSING
        assert claim.refund_id is None
        actions = [h["action"] for h in repo.get_claim_history(refundable)]
        assert actions[-1] == AUDIT_REFUND_RESERVED

        with pytest.raises(ConflictError, match="in progress"):
            coordinator.execute(refundable)
        assert len(gateway.calls) == 1

    def test_unrecorded_success_keeps_claim_reserved(self, repo, airlines, clock, make_gateway, refundable):
        class RecordFailingStore:
            def __init__(self, inner):
                self._inner = inner

            def __getattr__(self, name):
                return getattr(self._inner, name)

            def update_claim(self, claim_id, fields, **kwargs):
                if kwargs.get("audit_action") == AUDIT_REFUNDED:
                    raise DependencyError("disk full", claim_id=claim_id)
                return self._inner.update_claim(claim_id, fields, **kwargs)

        gateway = make_gateway()
        coordinator = RefundCoordinator(RecordFailingStore(repo), airlines, gateway, clock=clock)
        with pytest.raises(DependencyError) as exc_info:
            coordinator.execute(refundable)
        assert "re_0001" in exc_info.value.message

        assert repo.get_claim(refundable).refund_status == RefundStatus.PROCESSING
        with pytest.raises(ConflictError):
            coordinator.execute(refundable)
        assert len(gateway.calls) == 1


class TestConcurrency:
    def _run_concurrently(self, coordinators, claim_id, per_coordinator=4):
        results, errors = [], []
        barrier = threading.Barrier(len(coordinators) * per_coordinator)

        def worker(coordinator):
            barrier.wait()
            try:
                results.append(coordinator.execute(claim_id))
            except (AlreadyRefundedError, ConflictError) as e:
                errors.append(e)

        threads = [
            threading.Thread(target=worker, args=(c,))
            for c in coordinators
            for _ in range(per_coordinator)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return results, errors

    def test_same_process_callers_refund_once(self, repo, airlines, clock, make_gateway, refundable):
        gateway = make_gateway(delay=0.05)
        coordinator = RefundCoordinator(repo, airlines, gateway, clock=clock)
        results, errors = self._run_concurrently([coordinator], refundable, per_coordinator=6)
        assert len(gateway.calls) == 1
        assert [r.success for r in results] == [True]
        assert len(errors) == 5
        assert all(isinstance(e, AlreadyRefundedError) for e in errors)

    def test_default_coordinators_share_the_claim_lock(self, repo, airlines, clock, make_gateway, refundable):
        gateway = make_gateway(delay=0.05)
        coordinators = [RefundCoordinator(repo, airlines, gateway, clock=clock) for _ in range(2)]
        results, errors = self._run_concurrently(coordinators, refundable, per_coordinator=3)
        assert len(gateway.calls) == 1
        assert len(results) == 1
        # Waiters queue on one lock, so none of them sees the refund in progress
        assert len(errors) == 5
        assert all(isinstance(e, AlreadyRefundedError) for e in errors)

    def test_independent_coordinators_refund_once(self, repo, airlines, clock, make_gateway, refundable):
        # Separate locks stand in for separate processes sharing the store
        gateway = make_gateway(delay=0.05)
        coordinators = [
            RefundCoordinator(repo, airlines, gateway, clock=clock, lock=KeyedLock())
            for _ in range(3)
        ]
        results, errors = self._run_concurrently(coordinators, refundable, per_coordinator=2)
        assert len(gateway.calls) == 1
        assert len(results) == 1
        assert len(errors) == 5
        assert repo.get_claim(refundable).refund_id == results[0].refund_id


@pytest.mark.parametrize(
    "status,expected",
    [
        (ClaimStatus.DRAFT, ClaimStatus.REJECTED),
        (ClaimStatus.VALIDATED, ClaimStatus.REJECTED),
        (ClaimStatus.FILED, ClaimStatus.RESOLVED),
        (ClaimStatus.FOLLOW_UP, ClaimStatus.RESOLVED),
        (ClaimStatus.RESOLVED, ClaimStatus.RESOLVED),
        (ClaimStatus.REJECTED, ClaimStatus.REJECTED),
    ],
)
def test_status_after_refund(status, expected):
    assert status_after_refund(status) == expected

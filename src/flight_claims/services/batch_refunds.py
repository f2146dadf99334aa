"""Refund execution across many claims with per-claim failure isolation."""

import logging
import uuid
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from typing import Sequence

from flight_claims.config.settings import get_batch_max_workers
from flight_claims.exceptions import ClaimError, InternalError, ValidationError
from flight_claims.models.claim import BatchRefundSummary, RefundResult, RefundTrigger
from flight_claims.observability import claim_context
from flight_claims.services.batch_filing import validate_claim_ids
from flight_claims.services.refund_rules import coerce_trigger
from flight_claims.services.refunds import RefundCoordinator
from flight_claims.utils.sanitization import MAX_FILED_BY, sanitize_identifier

logger = logging.getLogger(__name__)


def summarize(results: list[RefundResult]) -> BatchRefundSummary:
    succeeded = [r for r in results if r.success]
    total = sum((r.amount for r in succeeded if r.amount is not None), Decimal("0.00"))
    return BatchRefundSummary(
        processed=len(results),
        succeeded=len(succeeded),
        failed=len(results) - len(succeeded),
        total_amount=total,
        results=results,
    )


class BatchRefundOrchestrator:
    """Runs RefundCoordinator.execute over a batch of claims.

    Every input claim id yields exactly one result, in input order; errors
    are recorded in that claim's result and never abort the batch.
    """

    def __init__(self, coordinator: RefundCoordinator, max_workers: int | None = None):
        self._coordinator = coordinator
        self._max_workers = max_workers or get_batch_max_workers()

    def process_batch(
        self,
        claim_ids: Sequence[str],
        trigger: RefundTrigger | str | None,
        processed_by: str,
    ) -> BatchRefundSummary:
        """Refund each claim under the given trigger (None evaluates all triggers)."""
        ids = validate_claim_ids(claim_ids)
        trigger = coerce_trigger(trigger)
        processor = sanitize_identifier(processed_by, MAX_FILED_BY)
        if not processor:
            raise ValidationError("processed_by is required")
        return self._run([(cid, trigger) for cid in ids], processor)

    def process_pending(self, processed_by: str = "system") -> BatchRefundSummary:
        """Refund every claim the analyzer currently finds eligible, each under its own trigger."""
        processor = sanitize_identifier(processed_by, MAX_FILED_BY)
        if not processor:
            raise ValidationError("processed_by is required")
        candidates = self._coordinator.analyzer.find_candidates()
        logger.info("Automatic refund run: %d eligible claims", len(candidates))
        return self._run([(d.claim_id, d.trigger) for d in candidates], processor)

    def _run(self, items: list[tuple[str, RefundTrigger | None]], processed_by: str) -> BatchRefundSummary:
        if not items:
            return summarize([])
        batch_id = str(uuid.uuid4())
        workers = min(self._max_workers, len(items))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="refund") as pool:
            results = list(
                pool.map(lambda item: self._refund_one(item[0], item[1], processed_by, batch_id), items)
            )
        summary = summarize(results)
        logger.info(
            "Refund batch %s: processed=%d succeeded=%d failed=%d total=%s",
            batch_id,
            summary.processed,
            summary.succeeded,
            summary.failed,
            summary.total_amount,
        )
        return summary

    def _refund_one(
        self,
        claim_id: str,
        trigger: RefundTrigger | None,
        processed_by: str,
        batch_id: str,
    ) -> RefundResult:
        with claim_context(claim_id, operation="refund_batch", correlation_id=batch_id):
            try:
                return self._coordinator.execute(claim_id, trigger, processed_by)
            except ClaimError as e:
                log = logger.warning if e.is_client_error() else logger.error
                log("Refund failed for %s: %s", claim_id, e)
                return RefundResult(
                    claim_id=claim_id, success=False, error=e.message, error_code=e.code
                )
            except Exception as e:
                logger.exception("Unexpected error refunding claim %s", claim_id)
                return RefundResult(
                    claim_id=claim_id,
                    success=False,
                    error=f"Unexpected error: {e}",
                    error_code=InternalError.code,
                )

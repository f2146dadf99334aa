"""Automatic filing of many claims with per-claim failure isolation."""

import logging
import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import Sequence

from flight_claims.config.settings import get_batch_max_workers, get_filing_config
from flight_claims.exceptions import ClaimError, InternalError, ValidationError
from flight_claims.models.claim import FilingMethod, FilingOutcome
from flight_claims.observability import claim_context, track_operation
from flight_claims.services.filing import FilingService
from flight_claims.services.interfaces import AirlineConfigSource
from flight_claims.services.validation import ClaimValidator

logger = logging.getLogger(__name__)

SYSTEM_FILER = "system"


def system_reference(claim_id: str) -> str:
    """Reference recorded for automatic filings; stable so a retried batch files once."""
    return f"AUTO-{claim_id}"


def validate_claim_ids(claim_ids) -> list[str]:
    """Check a batch id list. Raises ValidationError for an empty or malformed list."""
    if not isinstance(claim_ids, (list, tuple)):
        raise ValidationError("claim_ids must be a list of claim ids")
    if not claim_ids:
        raise ValidationError("claim_ids must not be empty")
    bad = [i for i, c in enumerate(claim_ids) if not isinstance(c, str) or not c.strip()]
    if bad:
        raise ValidationError(f"Invalid claim ids at positions: {bad}")
    return [c.strip() for c in claim_ids]


class BatchFilingOrchestrator:
    """Drives ready claims through validation and filing.

    One outcome per input claim id, in input order. A claim's failure is
    recorded in its outcome and never aborts the batch.
    """

    def __init__(
        self,
        validator: ClaimValidator,
        filing: FilingService,
        airlines: AirlineConfigSource,
        max_workers: int | None = None,
    ):
        self._validator = validator
        self._filing = filing
        self._airlines = airlines
        self._max_workers = max_workers or get_batch_max_workers()

    def process_automatic_filing(
        self, claim_ids: Sequence[str] | None = None
    ) -> list[FilingOutcome]:
        """File the given claims, or every claim ready to file when claim_ids is None."""
        if claim_ids is None:
            ids = [c.claim_id for c in self._filing.get_claims_ready_to_file()]
            logger.info("Automatic filing of all ready claims: %d found", len(ids))
        else:
            ids = validate_claim_ids(claim_ids)
        if not ids:
            return []

        batch_id = str(uuid.uuid4())
        auto_methods = set(get_filing_config()["auto_filing_methods"])
        workers = min(self._max_workers, len(ids))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="auto-file") as pool:
            outcomes = list(pool.map(lambda cid: self._file_one(cid, batch_id, auto_methods), ids))

        filed = sum(1 for o in outcomes if o.success)
        manual = sum(1 for o in outcomes if o.requires_manual_filing)
        logger.info(
            "Automatic filing batch %s: %d claims, %d filed, %d manual, %d failed",
            batch_id,
            len(outcomes),
            filed,
            manual,
            len(outcomes) - filed - manual,
        )
        return outcomes

    def _file_one(self, claim_id: str, batch_id: str, auto_methods: set[str]) -> FilingOutcome:
        with claim_context(claim_id, operation="auto_file", correlation_id=batch_id):
            try:
                with track_operation("auto_file", claim_id=claim_id) as outcome:
                    result = self._try_file(claim_id, auto_methods)
                    if not result.success:
                        outcome.fail(result.error_code or "not_filed")
                    return result
            except ClaimError as e:
                log = logger.warning if e.is_client_error() else logger.error
                log("Automatic filing failed for %s: %s", claim_id, e)
                return FilingOutcome(
                    claim_id=claim_id, success=False, reasons=[e.message], error_code=e.code
                )
            except Exception as e:
                logger.exception("Unexpected error filing claim %s", claim_id)
                return FilingOutcome(
                    claim_id=claim_id,
                    success=False,
                    reasons=[f"Unexpected error: {e}"],
                    error_code=InternalError.code,
                )

    def _try_file(self, claim_id: str, auto_methods: set[str]) -> FilingOutcome:
        validation = self._validator.validate(claim_id)
        if not validation.eligible:
            return FilingOutcome(
                claim_id=claim_id,
                success=False,
                reasons=validation.reasons,
                error_code="validation_failed",
            )

        claim = self._filing.require_claim(claim_id)
        config = self._airlines.get_config(claim.airline)
        method = config.submission_method.value if config else None
        if method not in auto_methods:
            reason = f"Airline requires {method or 'unknown'} submission; file manually"
            try:
                self._filing.mark_manual_filing_required(claim_id, reason)
            except Exception as e:
                logger.warning("Could not flag claim %s for manual filing: %s", claim_id, e)
            return FilingOutcome(
                claim_id=claim_id,
                success=False,
                reasons=[reason],
                requires_manual_filing=True,
            )

        reference = system_reference(claim_id)
        self._filing.mark_as_filed(claim_id, reference, SYSTEM_FILER, FilingMethod(method))
        return FilingOutcome(claim_id=claim_id, success=True, airline_reference=reference)

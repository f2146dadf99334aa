"""Filing state machine: file, schedule follow-ups, and administrative status changes.

Every mutation reads a fresh snapshot, decides, then writes with a
compare-and-set on the status it read. A write that loses the race is
re-read and reported as a conflict (or as an idempotent success).
"""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable

from flight_claims.config.settings import get_filing_config
from flight_claims.db.constants import (
    AUDIT_FILED,
    AUDIT_FOLLOW_UP_SCHEDULED,
    AUDIT_MANUAL_FILING_REQUIRED,
    AUDIT_STATUS_CHANGED,
)
from flight_claims.exceptions import ConflictError, NotFoundError, ValidationError
from flight_claims.models.claim import (
    FILED_STATUSES,
    TERMINAL_STATUSES,
    Claim,
    ClaimStatus,
    FilingMethod,
    FollowUpType,
)
from flight_claims.observability import log_claim_event, track_operation
from flight_claims.services.interfaces import AirlineConfigSource, ClaimStore, Notifier
from flight_claims.services.notifications import notify_best_effort
from flight_claims.utils.sanitization import (
    MAX_AIRLINE_REFERENCE,
    MAX_FILED_BY,
    sanitize_identifier,
    sanitize_notes,
)

logger = logging.getLogger(__name__)

FOLLOW_UP_STATUSES = frozenset({ClaimStatus.FILED, ClaimStatus.FOLLOW_UP})

# Columns that only make sense while the claim is with the airline
_FILING_COLUMNS = ("airline_reference", "filed_by", "filing_method")
_FOLLOW_UP_COLUMNS = ("follow_up_date", "follow_up_type", "follow_up_notes")

_STATUS_TIMESTAMPS = {
    ClaimStatus.VALIDATED: "validated_at",
    ClaimStatus.RESOLVED: "resolved_at",
    ClaimStatus.REJECTED: "rejected_at",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def follow_up_type_for(days_since_filing: int) -> FollowUpType:
    """Escalation level of a follow-up sent this many days after filing."""
    if days_since_filing >= 35:
        return FollowUpType.FINAL
    if days_since_filing >= 28:
        return FollowUpType.ESCALATION
    if days_since_filing >= 14:
        return FollowUpType.INITIAL
    return FollowUpType.REMINDER


def parse_follow_up_date(value: Any) -> date:
    """Accept a date, a datetime, or an ISO string. Raises ValidationError otherwise."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        text = value.strip()
        try:
            return date.fromisoformat(text)
        except ValueError:
            pass
        try:
            return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
        except ValueError:
            pass
    raise ValidationError(f"Invalid follow-up date: {value!r}")


def _coerce_enum(enum_cls, value: Any, label: str):
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        try:
            return enum_cls(value.strip().lower())
        except ValueError:
            pass
    allowed = ", ".join(m.value for m in enum_cls)
    raise ValidationError(f"Invalid {label}: {value!r} (expected one of: {allowed})")


class FilingService:
    """Owns the claim lifecycle status.

    Args:
        store: Record store; the only writer of claim records.
        airlines: Airline configuration lookup (follow-up schedule).
        notifier: Optional customer notifier; failures never affect the result.
        clock: Returns the current UTC time (tests inject a fixed clock).
    """

    def __init__(
        self,
        store: ClaimStore,
        airlines: AirlineConfigSource,
        notifier: Notifier | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self._store = store
        self._airlines = airlines
        self._notifier = notifier
        self._clock = clock or _utcnow
        self._config = get_filing_config()

    def require_claim(self, claim_id: str) -> Claim:
        if not claim_id or not isinstance(claim_id, str) or not claim_id.strip():
            raise ValidationError("Claim id is required")
        claim = self._store.get_claim(claim_id)
        if claim is None:
            raise NotFoundError(f"Claim not found: {claim_id}", claim_id=claim_id)
        return claim

    def _first_follow_up_days(self, claim: Claim) -> int:
        config = self._airlines.get_config(claim.airline)
        if config and config.follow_up_schedule_weeks:
            return config.follow_up_schedule_weeks[0] * 7
        return self._config["default_follow_up_days"]

    def mark_as_filed(
        self,
        claim_id: str,
        airline_reference: str,
        filed_by: str,
        filing_method: FilingMethod | str,
    ) -> bool:
        """Record that the claim was submitted to the airline.

        Repeating the call with the same reference on a filed claim is a no-op
        returning True. A different reference, or a closed claim, raises
        ConflictError.
        """
        with track_operation("mark_as_filed", claim_id=claim_id):
            reference = sanitize_identifier(airline_reference, MAX_AIRLINE_REFERENCE)
            filer = sanitize_identifier(filed_by, MAX_FILED_BY)
            missing = [
                name
                for name, value in (
                    ("claim_id", claim_id if isinstance(claim_id, str) else ""),
                    ("airline_reference", reference),
                    ("filed_by", filer),
                    ("filing_method", filing_method if filing_method else ""),
                )
                if not (value.strip() if isinstance(value, str) else value)
            ]
            if missing:
                raise ValidationError(
                    f"Missing required filing fields: {', '.join(missing)}",
                    claim_id=claim_id if isinstance(claim_id, str) else None,
                )
            method = _coerce_enum(FilingMethod, filing_method, "filing method")

            claim = self.require_claim(claim_id)
            if claim.is_filed:
                return self._confirm_existing_filing(claim, reference)
            if claim.status in TERMINAL_STATUSES:
                raise ConflictError(
                    f"Cannot file a claim in status {claim.status.value}", claim_id=claim_id
                )

            now = self._clock()
            follow_up_date = now.date() + timedelta(days=self._first_follow_up_days(claim))
            fields = {
                "status": ClaimStatus.FILED,
                "airline_reference": reference,
                "filed_by": filer,
                "filing_method": method,
                "filed_at": now,
                "follow_up_date": follow_up_date,
                "follow_up_type": FollowUpType.INITIAL,
                "follow_up_notes": None,
                "manual_filing_required": False,
                "manual_filing_reason": None,
            }
            updated = self._store.update_claim(
                claim_id,
                fields,
                expected={"status": claim.status, "airline_reference": None},
                audit_action=AUDIT_FILED,
                audit_details=(
                    f"Filed via {method.value} by {filer}; reference {reference}; "
                    f"follow-up {follow_up_date.isoformat()}"
                ),
            )
            if not updated:
                current = self.require_claim(claim_id)
                if current.is_filed:
                    return self._confirm_existing_filing(current, reference)
                raise ConflictError(
                    "Claim changed while filing; re-read and retry", claim_id=claim_id
                )

        log_claim_event(
            logger,
            "claim_filed",
            claim_id=claim_id,
            airline_reference=reference,
            filing_method=method.value,
            filed_by=filer,
        )
        notify_best_effort(
            getattr(self._notifier, "claim_filed", None),
            claim.model_copy(update=fields),
            description="claim_filed notification",
            claim_id=claim_id,
        )
        return True

    def _confirm_existing_filing(self, claim: Claim, reference: str) -> bool:
        if claim.airline_reference == reference:
            logger.info(
                "Claim %s already filed with reference %s; nothing to do",
                claim.claim_id,
                reference,
            )
            return True
        raise ConflictError(
            f"Claim already filed with a different airline reference "
            f"({claim.airline_reference})",
            claim_id=claim.claim_id,
        )

    def schedule_follow_up(
        self,
        claim_id: str,
        follow_up_date: date | datetime | str,
        follow_up_type: FollowUpType | str = FollowUpType.REMINDER,
        notes: str | None = None,
    ) -> bool:
        """Set the claim's single follow-up entry, replacing any previous one."""
        with track_operation("schedule_follow_up", claim_id=claim_id):
            claim = self.require_claim(claim_id)
            if claim.status not in FOLLOW_UP_STATUSES:
                raise ConflictError(
                    f"Follow-ups can only be scheduled for filed claims "
                    f"(status: {claim.status.value})",
                    claim_id=claim_id,
                )

            when = parse_follow_up_date(follow_up_date)
            today = self._clock().date()
            if when < today:
                raise ValidationError(
                    f"Follow-up date {when.isoformat()} is in the past", claim_id=claim_id
                )
            kind = _coerce_enum(FollowUpType, follow_up_type, "follow-up type")
            cleaned_notes = sanitize_notes(notes, self._config["max_notes_length"])
            details = f"{kind.value} follow-up on {when.isoformat()}"
            if claim.follow_up_date is not None:
                details += f" (replaces {claim.follow_up_date.isoformat()})"
            if cleaned_notes:
                details += f": {cleaned_notes}"
            updated = self._store.update_claim(
                claim_id,
                {
                    "follow_up_date": when,
                    "follow_up_type": kind,
                    "follow_up_notes": cleaned_notes,
                },
                expected={"status": claim.status},
                audit_action=AUDIT_FOLLOW_UP_SCHEDULED,
                audit_details=details,
            )
            if not updated:
                raise ConflictError(
                    "Claim changed while scheduling the follow-up", claim_id=claim_id
                )
        logger.info("Scheduled %s follow-up for claim %s on %s", kind.value, claim_id, when)
        return True

    def update_status(
        self,
        claim_id: str,
        new_status: ClaimStatus | str,
        notes: str | None = None,
    ) -> bool:
        """Administrative status change; any direction is allowed and always audited.

        Entering the filed family needs an airline reference already on the
        claim. Leaving it clears the filing and follow-up fields; the cleared
        reference is kept in the audit row.
        """
        with track_operation("update_status", claim_id=claim_id):
            target = _coerce_enum(ClaimStatus, new_status, "status")
            claim = self.require_claim(claim_id)
            old_status = claim.status

            if target in FILED_STATUSES and not claim.airline_reference:
                raise ConflictError(
                    f"Cannot move to {target.value} without an airline reference; "
                    "use mark_as_filed",
                    claim_id=claim_id,
                )

            now = self._clock()
            fields: dict[str, Any] = {"status": target}
            if target in _STATUS_TIMESTAMPS:
                fields[_STATUS_TIMESTAMPS[target]] = now
            cleared_reference = None
            if target not in FILED_STATUSES:
                if claim.airline_reference:
                    cleared_reference = claim.airline_reference
                for column in _FILING_COLUMNS + _FOLLOW_UP_COLUMNS:
                    fields[column] = None
            elif target in TERMINAL_STATUSES:
                for column in _FOLLOW_UP_COLUMNS:
                    fields[column] = None

            note = sanitize_notes(notes, self._config["max_notes_length"]) or (
                f"Status changed from {old_status.value} to {target.value}"
            )
            details = note
            if cleared_reference:
                details += f" [cleared airline reference {cleared_reference}]"

            updated = self._store.update_claim(
                claim_id,
                fields,
                expected={"status": old_status},
                audit_action=AUDIT_STATUS_CHANGED,
                audit_details=details,
            )
            if not updated:
                self.require_claim(claim_id)
                raise ConflictError(
                    "Claim status changed concurrently; re-read and retry", claim_id=claim_id
                )

        log_claim_event(
            logger,
            "status_changed",
            claim_id=claim_id,
            old_status=old_status.value,
            new_status=target.value,
        )
        notify_best_effort(
            getattr(self._notifier, "status_changed", None),
            claim.model_copy(update=fields),
            old_status,
            note,
            description="status_changed notification",
            claim_id=claim_id,
        )
        return True

    def mark_manual_filing_required(self, claim_id: str, reason: str) -> bool:
        """Flag a claim for an operator to file by hand. Returns False if nothing was updated."""
        cleaned = sanitize_notes(reason, self._config["max_notes_length"]) or "Manual filing required"
        return self._store.update_claim(
            claim_id,
            {"manual_filing_required": True, "manual_filing_reason": cleaned},
            audit_action=AUDIT_MANUAL_FILING_REQUIRED,
            audit_details=cleaned,
        )

    def get_claims_ready_to_file(self) -> list[Claim]:
        """Validated, unfiled claims not waiting on an operator."""
        return self._store.find_claims(
            lambda c: not c.manual_filing_required and not c.airline_reference,
            statuses=[ClaimStatus.VALIDATED],
        )

    def get_claims_needing_follow_up(self, as_of: date | None = None) -> list[Claim]:
        """Filed claims whose follow-up date is on or before as_of (default today)."""
        as_of = as_of or self._clock().date()
        return self._store.find_claims(
            lambda c: c.follow_up_date is not None and c.follow_up_date <= as_of,
            statuses=FOLLOW_UP_STATUSES,
        )

"""Dashboard counters over the record store."""

import logging
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Callable

from flight_claims.config.settings import get_filing_config
from flight_claims.models.claim import (
    PRE_FILING_STATUSES,
    Claim,
    ClaimStatus,
    FilingStats,
)
from flight_claims.services.interfaces import ClaimStore

logger = logging.getLogger(__name__)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _hours_to_file(claim: Claim) -> float | None:
    if claim.filed_at is None or claim.submitted_at is None:
        return None
    delta = _aware(claim.filed_at) - _aware(claim.submitted_at)
    return max(delta.total_seconds(), 0.0) / 3600


class FilingStatsAggregator:
    """Read-only aggregation; an empty store yields all zeros."""

    def __init__(self, store: ClaimStore, clock: Callable[[], datetime] | None = None):
        self._store = store
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def get_filing_stats(self) -> FilingStats:
        claims = self._store.find_claims()
        now = self._clock()
        today = now.date()
        deadline = timedelta(hours=get_filing_config()["filing_deadline_hours"])

        by_status = Counter(c.status.value for c in claims)
        filed = [c for c in claims if c.is_filed]
        durations = [h for h in (_hours_to_file(c) for c in filed) if h is not None]
        by_airline = Counter((c.airline or "unknown") for c in claims)

        needing_follow_up = sum(
            1
            for c in claims
            if c.status in (ClaimStatus.FILED, ClaimStatus.FOLLOW_UP)
            and c.follow_up_date is not None
            and c.follow_up_date <= today
        )
        overdue = sum(
            1
            for c in claims
            if c.status in PRE_FILING_STATUSES
            and c.submitted_at is not None
            and now - _aware(c.submitted_at) > deadline
        )

        return FilingStats(
            total_claims=len(claims),
            total_filed=len(filed),
            pending_validation=by_status.get(ClaimStatus.DRAFT.value, 0),
            pending_filing=by_status.get(ClaimStatus.VALIDATED.value, 0),
            average_time_to_file_hours=(
                round(sum(durations) / len(durations), 2) if durations else 0.0
            ),
            needing_follow_up=needing_follow_up,
            overdue=overdue,
            by_airline=dict(sorted(by_airline.items())),
            by_status=dict(sorted(by_status.items())),
        )

"""Claim filing and refund services, wired to the SQLite store by default."""

from dataclasses import dataclass

from flight_claims.config.airlines import AirlineConfigProvider
from flight_claims.db.repository import ClaimRepository
from flight_claims.services.batch_filing import BatchFilingOrchestrator
from flight_claims.services.batch_refunds import BatchRefundOrchestrator
from flight_claims.services.filing import FilingService
from flight_claims.services.interfaces import (
    AirlineConfigSource,
    ClaimStore,
    Notifier,
    PaymentGateway,
)
from flight_claims.services.refund_rules import RefundAnalyzer
from flight_claims.services.refunds import RefundCoordinator
from flight_claims.services.stats import FilingStatsAggregator
from flight_claims.services.validation import ClaimValidator


@dataclass
class ClaimServices:
    """Services sharing one store and airline config. Refund services need a gateway."""

    store: ClaimStore
    airlines: AirlineConfigSource
    validator: ClaimValidator
    filing: FilingService
    batch_filing: BatchFilingOrchestrator
    stats: FilingStatsAggregator
    analyzer: RefundAnalyzer
    refunds: RefundCoordinator | None = None
    batch_refunds: BatchRefundOrchestrator | None = None


def build_services(
    store: ClaimStore | None = None,
    airlines: AirlineConfigSource | None = None,
    gateway: PaymentGateway | None = None,
    notifier: Notifier | None = None,
    clock=None,
) -> ClaimServices:
    """Wire the services. Defaults: SQLite store at CLAIMS_DB_PATH, built-in airline table."""
    store = store or ClaimRepository()
    airlines = airlines or AirlineConfigProvider()
    validator = ClaimValidator(store, airlines)
    filing = FilingService(store, airlines, notifier=notifier, clock=clock)
    refunds = None
    batch_refunds = None
    if gateway is not None:
        refunds = RefundCoordinator(store, airlines, gateway, notifier=notifier, clock=clock)
        batch_refunds = BatchRefundOrchestrator(refunds)
    return ClaimServices(
        store=store,
        airlines=airlines,
        validator=validator,
        filing=filing,
        batch_filing=BatchFilingOrchestrator(validator, filing, airlines),
        stats=FilingStatsAggregator(store, clock=clock),
        analyzer=RefundAnalyzer(store, airlines, clock=clock),
        refunds=refunds,
        batch_refunds=batch_refunds,
    )


__all__ = [
    "BatchFilingOrchestrator",
    "BatchRefundOrchestrator",
    "ClaimServices",
    "ClaimValidator",
    "FilingService",
    "FilingStatsAggregator",
    "RefundAnalyzer",
    "RefundCoordinator",
    "build_services",
]

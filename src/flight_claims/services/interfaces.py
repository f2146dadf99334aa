"""Collaborator interfaces the filing and refund services depend on.

ClaimRepository and AirlineConfigProvider satisfy the first two. Payment
gateways and notification senders are supplied by the hosting application.
"""

from decimal import Decimal
from typing import Any, Callable, Iterable, Optional, Protocol

from flight_claims.models.airline import AirlineConfig
from flight_claims.models.claim import Claim, ClaimStatus, GatewayRefund


class ClaimStore(Protocol):
    def get_claim(self, claim_id: str) -> Optional[Claim]: ...

    def find_claims(
        self,
        predicate: Optional[Callable[[Claim], bool]] = None,
        *,
        statuses: Optional[Iterable[ClaimStatus]] = None,
        airline: Optional[str] = None,
        flight_number: Optional[str] = None,
        departure_date: Optional[str] = None,
    ) -> list[Claim]: ...

    def update_claim(
        self,
        claim_id: str,
        fields: dict[str, Any],
        expected: Optional[dict[str, Any]] = None,
        audit_action: Optional[str] = None,
        audit_details: Optional[str] = None,
    ) -> bool: ...

    def get_claim_history(self, claim_id: str) -> list[dict[str, Any]]: ...


class AirlineConfigSource(Protocol):
    def get_config(self, airline: Optional[str]) -> Optional[AirlineConfig]: ...


class PaymentGateway(Protocol):
    """Refunds a captured payment. Raise on failure; never retried by the caller."""

    def refund(
        self,
        payment_reference: str,
        amount: Decimal,
        metadata: dict[str, str],
    ) -> GatewayRefund: ...


class Notifier(Protocol):
    """Customer-facing notifications. Failures are logged and never propagate."""

    def claim_filed(self, claim: Claim) -> None: ...

    def status_changed(self, claim: Claim, old_status: ClaimStatus, notes: str) -> None: ...

    def refund_processed(self, claim: Claim, amount: Decimal, external_refund_id: str) -> None: ...

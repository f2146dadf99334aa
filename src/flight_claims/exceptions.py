"""Typed errors raised by claim filing and refund operations.

Route handlers map ``http_status`` to a response code. Batch orchestrators
catch these per claim and record ``code`` in the claim's result entry.
"""


class ClaimError(Exception):
    """Base class for all claim operation errors."""

    code = "error"
    http_status = 500

    def __init__(self, message: str, claim_id: str | None = None):
        super().__init__(message)
        self.message = message
        self.claim_id = claim_id

    def is_client_error(self) -> bool:
        """True for 4xx-equivalent errors (the request was malformed or illegal)."""
        return 400 <= self.http_status < 500

    def to_dict(self) -> dict:
        return {
            "error": self.code,
            "message": self.message,
            "claim_id": self.claim_id,
        }


class NotFoundError(ClaimError):
    """Claim id is unknown to the record store."""

    code = "not_found"
    http_status = 404


class ValidationError(ClaimError):
    """Missing or malformed required input."""

    code = "validation_error"
    http_status = 400


class ConflictError(ClaimError):
    """Illegal state transition for the claim's current state."""

    code = "conflict"
    http_status = 409


class AlreadyRefundedError(ConflictError):
    """Claim already carries a refund id; a second refund is never attempted."""

    code = "already_refunded"


class DependencyError(ClaimError):
    """Record store or payment gateway call failed or timed out."""

    code = "dependency_error"
    http_status = 503


class DependencyTimeoutError(DependencyError):
    """An external call did not answer in time; its outcome is unknown."""

    code = "dependency_timeout"
    http_status = 504


class InternalError(ClaimError):
    """Unexpected failure inside the core."""

    code = "internal"
    http_status = 500

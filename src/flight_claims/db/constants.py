"""Audit actions and writable claim columns."""

AUDIT_CREATED = "created"
AUDIT_STATUS_CHANGED = "status_changed"
AUDIT_FILED = "filed"
AUDIT_FOLLOW_UP_SCHEDULED = "follow_up_scheduled"
AUDIT_MANUAL_FILING_REQUIRED = "manual_filing_required"
AUDIT_REFUND_RESERVED = "refund_reserved"
AUDIT_REFUND_RELEASED = "refund_released"
AUDIT_REFUNDED = "refunded"

AUDIT_ACTIONS = (
    AUDIT_CREATED,
    AUDIT_STATUS_CHANGED,
    AUDIT_FILED,
    AUDIT_FOLLOW_UP_SCHEDULED,
    AUDIT_MANUAL_FILING_REQUIRED,
    AUDIT_REFUND_RESERVED,
    AUDIT_REFUND_RELEASED,
    AUDIT_REFUNDED,
)

# Columns update_claim may set (identity and bookkeeping columns excluded)
UPDATABLE_COLUMNS = frozenset(
    {
        "first_name",
        "last_name",
        "email",
        "flight_number",
        "airline",
        "departure_date",
        "departure_airport",
        "arrival_airport",
        "delay_duration",
        "distance_km",
        "payment_reference",
        "submitted_at",
        "status",
        "boarding_pass_uploaded",
        "delay_proof_uploaded",
        "airline_reference",
        "filed_by",
        "filing_method",
        "validated_at",
        "filed_at",
        "resolved_at",
        "rejected_at",
        "follow_up_date",
        "follow_up_type",
        "follow_up_notes",
        "manual_filing_required",
        "manual_filing_reason",
        "manual_refund_requested",
        "refund_requested_at",
        "refund_status",
        "refund_amount",
        "refund_id",
        "stripe_refund_id",
        "refund_trigger",
        "refund_processed_at",
        "refund_processed_by",
    }
)

"""Best-effort customer notifications and email delivery webhook interpretation."""

import logging
from datetime import datetime, timezone
from typing import Any, Callable

from flight_claims.exceptions import ValidationError
from flight_claims.models.notification import DeliveryEvent, DeliverySignal

logger = logging.getLogger(__name__)

_SENDGRID_EVENTS = {
    "processed": DeliveryEvent.SENT,
    "delivered": DeliveryEvent.DELIVERED,
    "open": DeliveryEvent.OPENED,
    "bounce": DeliveryEvent.BOUNCED,
    "dropped": DeliveryEvent.BOUNCED,
}

_RESEND_EVENTS = {
    "email.sent": DeliveryEvent.SENT,
    "email.delivered": DeliveryEvent.DELIVERED,
    "email.opened": DeliveryEvent.OPENED,
    "email.bounced": DeliveryEvent.BOUNCED,
    "email.complained": DeliveryEvent.FAILED,
    "email.delivery_delayed": DeliveryEvent.FAILED,
}


def notify_best_effort(
    func: Callable[..., Any] | None,
    *args: Any,
    description: str = "notification",
    claim_id: str | None = None,
) -> bool:
    """Call a notifier method; log and swallow any failure.

    Returns True if the call completed. A missing notifier is a no-op.
    """
    if func is None:
        return False
    try:
        func(*args)
        return True
    except Exception as e:
        logger.warning("%s failed for claim %s: %s", description, claim_id, e)
        return False


def _parse_epoch(value: Any) -> datetime | None:
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(float(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def _parse_iso(value: Any) -> datetime | None:
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _from_sendgrid(payload: dict[str, Any]) -> DeliverySignal:
    raw_event = str(payload.get("event") or "")
    event = _SENDGRID_EVENTS.get(raw_event.lower(), DeliveryEvent.FAILED)
    details = payload.get("reason") or payload.get("response")
    message_id = payload.get("sg_message_id")
    if isinstance(message_id, str):
        # SendGrid appends a filter suffix to the id it returned at send time
        message_id = message_id.split(".", 1)[0]
    return DeliverySignal(
        provider="sendgrid",
        message_id=message_id,
        event=event,
        occurred_at=_parse_epoch(payload.get("timestamp")),
        details=details,
        requires_follow_up=event in (DeliveryEvent.BOUNCED, DeliveryEvent.FAILED),
        raw_event=raw_event or None,
        extra={k: payload[k] for k in ("email", "claim_id") if k in payload},
    )


def _from_resend(payload: dict[str, Any]) -> DeliverySignal:
    raw_event = str(payload.get("type") or "")
    data = payload.get("data") or {}
    if not isinstance(data, dict):
        data = {}
    event = _RESEND_EVENTS.get(raw_event.lower(), DeliveryEvent.FAILED)
    error = data.get("error")
    if isinstance(error, dict):
        error = error.get("message")
    bounce = data.get("bounce")
    if not error and isinstance(bounce, dict):
        error = bounce.get("message")
    return DeliverySignal(
        provider="resend",
        message_id=data.get("email_id"),
        event=event,
        occurred_at=_parse_iso(payload.get("created_at") or data.get("created_at")),
        details=error,
        requires_follow_up=event in (DeliveryEvent.BOUNCED, DeliveryEvent.FAILED),
        raw_event=raw_event or None,
        extra={"to": data["to"]} if "to" in data else {},
    )


_INTERPRETERS = {
    "sendgrid": _from_sendgrid,
    "resend": _from_resend,
}


def interpret_delivery_event(provider: str, payload: dict[str, Any]) -> DeliverySignal:
    """Read a delivery-status webhook payload into a follow-up relevant signal.

    Pure function: signature verification is the webhook route's job.
    Unrecognised event names are treated as failed deliveries.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Delivery payload must be an object")
    interpreter = _INTERPRETERS.get((provider or "").strip().lower())
    if interpreter is None:
        raise ValidationError(f"Unknown email provider: {provider}")
    return interpreter(payload)

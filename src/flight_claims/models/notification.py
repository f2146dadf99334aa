"""Models for email delivery status events."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class DeliveryEvent(str, Enum):
    SENT = "sent"
    DELIVERED = "delivered"
    OPENED = "opened"
    BOUNCED = "bounced"
    FAILED = "failed"


class DeliverySignal(BaseModel):
    """Follow-up relevant reading of one email provider webhook payload."""

    provider: str
    message_id: Optional[str] = Field(default=None, description="Provider message id")
    event: DeliveryEvent
    occurred_at: Optional[datetime] = None
    details: Optional[str] = Field(default=None, description="Bounce or failure reason")
    requires_follow_up: bool = Field(
        default=False, description="True when the airline did not receive the claim email"
    )
    raw_event: Optional[str] = Field(default=None, description="Provider event name as sent")
    extra: dict[str, Any] = Field(default_factory=dict)

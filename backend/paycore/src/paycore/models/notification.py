"""Outbound payment notification message."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from .enums import NotificationKind, NotificationStatus


class NotificationMessage(BaseModel):
    """A notification queued after a committed payment transition."""

    model_config = ConfigDict(strict=True)

    message_id: str = Field(..., description="Idempotency key: <kind>:<booking_id>")
    kind: NotificationKind
    booking_id: str
    reason: str | None = None
    status: NotificationStatus = NotificationStatus.PENDING
    attempts: int = 0
    created_at: datetime
    last_error: str | None = None

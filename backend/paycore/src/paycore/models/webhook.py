"""Webhook event log model for idempotency and auditing."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class WebhookEventLog(BaseModel):
    """Log of a received gateway webhook event.

    Used for:
    - Idempotency: prevent processing same event twice
    - Auditing: track all webhook deliveries
    - Debugging: investigate payment issues
    """

    model_config = ConfigDict(strict=True)

    event_id: str = Field(
        ...,
        description="Provider event ID, or <checkoutId>_<status> for Maya",
        examples=["evt_1ABC123DEF456", "chk_123_SUCCESS"],
    )
    gateway: str = Field(..., examples=["stripe", "maya_checkout"])
    event_type: str = Field(
        ...,
        description="Provider event type",
        examples=["checkout.session.completed", "PAYMENT_SUCCESS"],
    )
    processed_at: datetime
    payload_hash: str = Field(..., description="SHA-256 hash of payload")
    booking_id: str | None = None
    processing_result: str = Field(
        default="success",
        description="Result of processing: success, duplicate, skipped, error",
    )
    error_message: str | None = None

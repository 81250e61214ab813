"""Payment session model."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from .enums import SessionStatus


class PaymentSession(BaseModel):
    """A time-boxed handle for one in-flight payment attempt on a booking.

    Keyed by booking_id: a booking has at most one session record, and at most
    one of them may be active (pending and unexpired) at a time.
    """

    model_config = ConfigDict(strict=True)

    booking_id: str = Field(..., description="Booking being paid")
    user_id: str = Field(..., description="Client who started the attempt")
    gateway: str = Field(..., description="Gateway adapter name")
    amount: Decimal = Field(..., description="Amount in PHP")
    status: SessionStatus = Field(default=SessionStatus.PENDING)
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime | None = Field(default=None)
    gateway_reference: str | None = Field(
        default=None,
        description="Provider reference (checkout ID, order ID, Checkout Session ID)",
        examples=["cs_test_abc123", "5O190127TN364715T"],
    )
    redirect_url: str | None = Field(
        default=None, description="Where the client completes the payment"
    )
    failure_reason: str | None = Field(default=None)

    @property
    def is_terminal(self) -> bool:
        return self.status in (SessionStatus.COMPLETED, SessionStatus.FAILED)

"""Normalized gateway request/response models shared by all adapters."""

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from pydantic import BaseModel, ConfigDict, Field

from .enums import GatewayState, ProcessingOutcome


class CheckoutRequest(BaseModel):
    """Provider-independent request to start a gateway payment.

    The booking ID is the provider-side reference for every gateway.
    """

    model_config = ConfigDict(frozen=True)

    booking_id: str
    user_id: str
    amount: Decimal = Field(..., gt=0, description="Amount in PHP")
    currency: str = "PHP"
    description: str = "Booking payment"
    customer_email: str | None = None
    return_url: str
    cancel_url: str

    @property
    def amount_minor(self) -> int:
        """Amount in centavos."""
        return int((self.amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class CheckoutResult(BaseModel):
    """Result of ``GatewayAdapter.create_payment``."""

    success: bool
    session_ref: str | None = Field(default=None, description="Provider reference")
    redirect_url: str | None = None
    state: GatewayState = GatewayState.CREATED
    expires_at: datetime | None = None
    error: str | None = None


class GatewayStatus(BaseModel):
    """Authoritative provider status translated to a gateway state."""

    state: GatewayState
    provider_ref: str
    booking_id: str | None = Field(
        default=None, description="Booking reference echoed back by the provider"
    )
    amount: Decimal | None = None
    provider_status: str | None = Field(
        default=None, description="Raw provider status, for logs"
    )
    capture_ref: str | None = Field(
        default=None, description="Provider ID of the capture, when distinct"
    )
    failure_reason: str | None = None


class ProcessingResult(BaseModel):
    """Outcome of handling a pull result or a pushed webhook event."""

    outcome: ProcessingOutcome
    booking_id: str | None = None
    transaction_id: str | None = None
    event_id: str | None = None
    message: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.outcome in (
            ProcessingOutcome.CAPTURED,
            ProcessingOutcome.DECLINED,
            ProcessingOutcome.ALREADY_PROCESSED,
        )


class WebhookEvent(BaseModel):
    """A verified, parsed provider webhook.

    ``status`` is None for event types the adapter does not act on.
    """

    event_id: str = Field(..., description="Idempotency key for the delivery")
    event_type: str
    booking_id: str | None = None
    status: GatewayStatus | None = None

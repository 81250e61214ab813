"""Ledger transaction model."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from .enums import TransactionStatus, TransactionType

# The completed booking payment of a booking has a deterministic ID so the
# store can refuse a second one (conditional put on attribute_not_exists).
BOOKING_PAYMENT_PREFIX = "BKP"
REFUND_PREFIX = "RFD"


def booking_payment_id(booking_id: str) -> str:
    """Ledger ID of the single settling payment for a booking."""
    return f"{BOOKING_PAYMENT_PREFIX}-{booking_id}"


def extra_capture_refund_id(booking_id: str, checkout_reference: str) -> str:
    """Ledger ID of the refund owed when a second checkout also captured."""
    return f"{REFUND_PREFIX}-{booking_id}-{checkout_reference}"


class Transaction(BaseModel):
    """An immutable ledger entry for a pending or completed money movement.

    Amounts are stored in PHP.
    """

    model_config = ConfigDict(strict=True)

    transaction_id: str = Field(..., description="Unique transaction ID")
    booking_id: str = Field(..., description="Reference to Booking")
    client_id: str = Field(..., description="Paying client")
    provider_id: str = Field(..., description="Service provider")
    amount: Decimal = Field(..., ge=0, description="Amount in PHP")
    type: TransactionType = Field(default=TransactionType.BOOKING_PAYMENT)
    status: TransactionStatus = Field(..., description="Transaction status")
    payment_method: str = Field(..., description="Payment method used")
    gateway_reference: str | None = Field(
        default=None, description="External reference (capture ID, checkout ID)"
    )
    checkout_reference: str | None = Field(
        default=None, description="Provider checkout or order the money went through"
    )
    created_at: datetime = Field(..., description="Creation timestamp")
    verified_at: datetime | None = Field(default=None)
    verified_by: str | None = Field(default=None)
    rejection_reason: str | None = Field(default=None)

"""Booking model as read by the payment core."""

from datetime import UTC, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .enums import BookingStatus


class Booking(BaseModel):
    """A requested service engagement between a client and a provider.

    The booking subsystem owns this record. The payment core reads it and
    writes only the payment fields, through the ledger's atomic transitions.
    Prices are PHP.
    """

    model_config = ConfigDict(strict=True)

    booking_id: str = Field(..., description="Booking ID")
    client_id: str = Field(..., description="Client (payer) user ID")
    provider_id: str = Field(..., description="Service provider user ID")
    price: Decimal = Field(..., description="Price in PHP")
    status: BookingStatus = Field(..., description="Booking status")
    created_at: datetime = Field(..., description="Creation timestamp")

    service_name: str | None = Field(default=None, description="Booked service name")
    payment_method: str | None = Field(default=None)
    gateway_reference: str | None = Field(
        default=None, description="Provider reference of the settling payment"
    )
    payment_verified_at: datetime | None = Field(default=None)
    payment_verified_by: str | None = Field(
        default=None, description="Gateway name or admin ID that confirmed payment"
    )
    payment_rejection_reason: str | None = Field(default=None)
    payment_proof_url: str | None = Field(default=None)
    payment_proof_uploaded_at: datetime | None = Field(default=None)

    @field_validator("created_at", "payment_verified_at", "payment_proof_uploaded_at")
    @classmethod
    def assume_utc(cls, v: datetime | None) -> datetime | None:
        """Naive timestamps written by other services are UTC."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v

    def age_seconds(self, now: datetime) -> float:
        """Seconds elapsed since the booking was created."""
        return (now - self.created_at).total_seconds()

"""API models for payment endpoints.

Domain results (ValidationResult, CheckoutResult, ProcessingResult,
PaymentSession, Transaction) are returned as-is from paycore.models; this
module only holds request bodies and API-specific responses.
"""

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from paycore.models import (
    AnomalyReport,
    DailyMetrics,
    FileUpload,
    MethodStats,
    PaymentMethod,
    PaymentMetrics,
)


class ValidatePaymentRequest(BaseModel):
    """Request to check a payment without creating anything."""

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {"booking_id": "BK-1001", "amount": "1500.00", "payment_method": "gcash"}
            ]
        },
    )

    booking_id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0, description="Amount in PHP")
    payment_method: str = Field(..., examples=["gcash", "card"])
    file: FileUpload | None = Field(default=None, description="Proof-of-payment metadata")


class StartCheckoutRequest(BaseModel):
    """Request to start a gateway checkout."""

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {"booking_id": "BK-1001", "amount": "1500.00", "payment_method": "card"}
            ]
        },
    )

    booking_id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0, description="Amount in PHP")
    payment_method: PaymentMethod = Field(
        ..., description="Gateway method (maya_checkout, paypal, card)"
    )
    customer_email: str | None = None


class CompleteCheckoutRequest(BaseModel):
    """Provider reference returned on the redirect, when the provider sends one."""

    provider_ref: str | None = Field(
        default=None,
        description="Checkout ID, PayPal order token or Stripe Checkout Session ID",
    )


class ProofSubmissionRequest(BaseModel):
    """Manual transfer receipt, already uploaded to storage."""

    amount: Decimal = Field(..., gt=0, description="Amount in PHP")
    payment_method: str = Field(..., examples=["gcash", "maya", "bank"])
    file: FileUpload
    proof_url: str = Field(..., min_length=1)


class RejectPaymentRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class CancelCheckoutResponse(BaseModel):
    cancelled: bool


class MetricsResponse(BaseModel):
    """Payment metrics over a date range."""

    start: str
    end: str
    totals: PaymentMetrics
    daily: list[DailyMetrics]
    by_method: dict[str, MethodStats]


class AnomalyResponse(BaseModel):
    anomalies: AnomalyReport
    alert_id: str | None = None


class DrainResponse(BaseModel):
    sent: int
    failed: int


class WebhookResponse(BaseModel):
    """Standard webhook response."""

    received: bool
    event_id: str | None = None
    processing_result: str  # "captured", "declined", "duplicate", "skipped", "error", ...
    message: str | None = None

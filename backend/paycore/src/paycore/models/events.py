"""Payment telemetry models: lifecycle events, daily metrics, anomaly reports."""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .enums import PaymentEventType


class PaymentEvent(BaseModel):
    """Append-only record of one payment lifecycle event."""

    model_config = ConfigDict(strict=True)

    event_type: PaymentEventType
    booking_id: str
    user_id: str
    amount: Decimal = Field(..., description="Amount in PHP")
    payment_method: str
    timestamp: datetime
    metadata: dict[str, Any] = Field(default_factory=dict)


class DailyMetrics(BaseModel):
    """Per-date aggregate counters, incremented by each PaymentEvent."""

    date: str = Field(..., description="Calendar date (YYYY-MM-DD, UTC)")
    total_payments: int = 0
    successful_payments: int = 0
    failed_payments: int = 0
    verified_payments: int = 0
    rejected_payments: int = 0
    total_amount: Decimal = Decimal("0")


class PaymentMetrics(BaseModel):
    """Aggregated metrics over a date range."""

    total_payments: int = 0
    successful_payments: int = 0
    failed_payments: int = 0
    verified_payments: int = 0
    rejected_payments: int = 0
    pending_payments: int = 0
    total_amount: Decimal = Decimal("0")
    average_amount: Decimal = Decimal("0")
    success_rate: float = Field(default=0.0, description="successful / total, 0..1")


class MethodStats(BaseModel):
    """Per-payment-method volume and success rate."""

    count: int = 0
    amount: Decimal = Decimal("0")
    success_rate: float = 0.0


class AnomalyReport(BaseModel):
    """Flags raised by the anomaly checks. Reported, never auto-remediated."""

    high_failure_rate: bool = False
    unusual_amounts: bool = False
    duplicate_payments: bool = False
    slow_processing: bool = False

    @property
    def any(self) -> bool:
        return (
            self.high_failure_rate
            or self.unusual_amounts
            or self.duplicate_payments
            or self.slow_processing
        )

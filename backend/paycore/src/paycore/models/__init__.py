"""Pydantic models for the booking payment core."""

from .booking import Booking
from .enums import (
    MANUAL_PAYMENT_METHODS,
    BookingStatus,
    GatewayState,
    NotificationKind,
    NotificationStatus,
    PaymentEventType,
    PaymentMethod,
    ProcessingOutcome,
    SessionStatus,
    TransactionStatus,
    TransactionType,
)
from .errors import (
    ERROR_MESSAGES,
    ERROR_RECOVERY,
    GATEWAY_ERROR_MESSAGES,
    ErrorCode,
    ErrorResponse,
    GatewayError,
    PaymentError,
    PaymentIntegrityError,
    TransientGatewayError,
    get_user_friendly_gateway_message,
)
from .events import (
    AnomalyReport,
    DailyMetrics,
    MethodStats,
    PaymentEvent,
    PaymentMetrics,
)
from .gateway import (
    CheckoutRequest,
    CheckoutResult,
    GatewayStatus,
    ProcessingResult,
    WebhookEvent,
)
from .notification import NotificationMessage
from .session import PaymentSession
from .transaction import Transaction, booking_payment_id, extra_capture_refund_id
from .validation import DuplicateCheck, FileUpload, FileValidation, ValidationResult
from .webhook import WebhookEventLog

__all__ = [
    # Enums
    "BookingStatus",
    "GatewayState",
    "MANUAL_PAYMENT_METHODS",
    "NotificationKind",
    "NotificationStatus",
    "PaymentEventType",
    "PaymentMethod",
    "ProcessingOutcome",
    "SessionStatus",
    "TransactionStatus",
    "TransactionType",
    # Records
    "Booking",
    "PaymentSession",
    "Transaction",
    "booking_payment_id",
    "extra_capture_refund_id",
    "NotificationMessage",
    "WebhookEventLog",
    # Telemetry
    "AnomalyReport",
    "DailyMetrics",
    "MethodStats",
    "PaymentEvent",
    "PaymentMetrics",
    # Gateway
    "CheckoutRequest",
    "CheckoutResult",
    "GatewayStatus",
    "ProcessingResult",
    "WebhookEvent",
    # Validation
    "DuplicateCheck",
    "FileUpload",
    "FileValidation",
    "ValidationResult",
    # Errors
    "ERROR_MESSAGES",
    "ERROR_RECOVERY",
    "GATEWAY_ERROR_MESSAGES",
    "ErrorCode",
    "ErrorResponse",
    "GatewayError",
    "PaymentError",
    "PaymentIntegrityError",
    "TransientGatewayError",
    "get_user_friendly_gateway_message",
]

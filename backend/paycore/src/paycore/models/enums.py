"""Enumeration types for payment core data models."""

from enum import Enum


class BookingStatus(str, Enum):
    """Status of a booking.

    Values match the strings stored by the booking subsystem.
    """

    PENDING_PAYMENT = "Pending Payment"
    PENDING_VERIFICATION = "Pending Verification"
    UPCOMING = "Upcoming"
    PAYMENT_REJECTED = "Payment Rejected"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class SessionStatus(str, Enum):
    """Status of a payment session."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class TransactionType(str, Enum):
    """Kind of ledger entry."""

    BOOKING_PAYMENT = "booking_payment"
    PAYOUT_REQUEST = "payout_request"
    REFUND = "refund"
    COMMISSION = "commission"


class TransactionStatus(str, Enum):
    """Status of a ledger transaction."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class PaymentMethod(str, Enum):
    """Supported payment methods.

    ``gcash``, ``maya`` and ``bank`` are manual transfers verified from an
    uploaded proof of payment. ``maya_checkout``, ``paypal`` and ``card`` go
    through a gateway adapter.
    """

    GCASH = "gcash"
    MAYA = "maya"
    BANK = "bank"
    MAYA_CHECKOUT = "maya_checkout"
    PAYPAL = "paypal"
    CARD = "card"


MANUAL_PAYMENT_METHODS: frozenset[PaymentMethod] = frozenset(
    {PaymentMethod.GCASH, PaymentMethod.MAYA, PaymentMethod.BANK}
)


class GatewayState(str, Enum):
    """Provider-agnostic gateway payment state."""

    CREATED = "created"
    REDIRECT_PENDING = "redirect_pending"
    DIRECT_AUTHORIZED = "direct_authorized"
    CAPTURED = "captured"
    DECLINED = "declined"

    @property
    def is_terminal(self) -> bool:
        return self in (GatewayState.CAPTURED, GatewayState.DECLINED)


class ProcessingOutcome(str, Enum):
    """Result of handling a gateway result or webhook."""

    CAPTURED = "captured"
    DECLINED = "declined"
    PENDING = "pending"
    ALREADY_PROCESSED = "already_processed"
    DUPLICATE = "duplicate"
    SKIPPED = "skipped"
    ERROR = "error"


class PaymentEventType(str, Enum):
    """Payment lifecycle telemetry event types."""

    PAYMENT_CREATED = "payment_created"
    PAYMENT_SUCCESS = "payment_success"
    PAYMENT_FAILED = "payment_failed"
    PAYMENT_VERIFIED = "payment_verified"
    PAYMENT_REJECTED = "payment_rejected"


class NotificationKind(str, Enum):
    """Outbound payment notification kinds."""

    PAYMENT_SUCCESS = "payment_success"
    PAYMENT_FAILURE = "payment_failure"


class NotificationStatus(str, Enum):
    """Delivery status of an outbox message."""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"

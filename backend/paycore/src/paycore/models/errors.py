"""Error codes and exceptions for the payment core.

Business-rule violations found by the validator and session guard are
returned as ``ValidationResult`` values. The exceptions here cover the other
classes: state conflicts raised at service boundaries (``PaymentError``),
gateway failures (``GatewayError`` / ``TransientGatewayError``) and integrity
violations of the atomic terminal write (``PaymentIntegrityError``).
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class ErrorCode(str, Enum):
    """Standard error codes returned by the payment API."""

    # Booking/validation errors (ERR_PAY_001-ERR_PAY_006)
    BOOKING_NOT_FOUND = "ERR_PAY_001"
    UNAUTHORIZED = "ERR_PAY_002"
    BOOKING_NOT_PAYABLE = "ERR_PAY_003"
    VALIDATION_FAILED = "ERR_PAY_004"
    UNKNOWN_PAYMENT_METHOD = "ERR_PAY_006"

    # Session errors (ERR_SESSION_001-ERR_SESSION_003)
    SESSION_ACTIVE = "ERR_SESSION_001"
    SESSION_NOT_FOUND = "ERR_SESSION_002"
    SESSION_INVALID = "ERR_SESSION_003"

    # Gateway errors (ERR_GATEWAY_001-ERR_GATEWAY_004)
    INVALID_WEBHOOK_SIGNATURE = "ERR_GATEWAY_001"
    GATEWAY_ERROR = "ERR_GATEWAY_002"
    GATEWAY_NOT_CONFIGURED = "ERR_GATEWAY_003"
    PAYMENT_FAILED = "ERR_GATEWAY_004"

    # Integrity (ERR_LEDGER_001)
    LEDGER_INTEGRITY = "ERR_LEDGER_001"

    # Caller identity (ERR_AUTH_001)
    AUTH_REQUIRED = "ERR_AUTH_001"


# Human-readable error messages
ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.BOOKING_NOT_FOUND: "Booking not found",
    ErrorCode.UNAUTHORIZED: "Unauthorized access to booking",
    ErrorCode.BOOKING_NOT_PAYABLE: "Booking is not in a payable state",
    ErrorCode.VALIDATION_FAILED: "Payment validation failed",
    ErrorCode.UNKNOWN_PAYMENT_METHOD: "Unknown payment method",
    ErrorCode.SESSION_ACTIVE: "A payment session is already in progress for this booking",
    ErrorCode.SESSION_NOT_FOUND: "Payment session not found",
    ErrorCode.SESSION_INVALID: "Payment session is no longer valid",
    ErrorCode.INVALID_WEBHOOK_SIGNATURE: "Invalid webhook signature",
    ErrorCode.GATEWAY_ERROR: "Failed to process payment. Please try again.",
    ErrorCode.GATEWAY_NOT_CONFIGURED: "Payment method is not available right now",
    ErrorCode.PAYMENT_FAILED: "Payment processing failed",
    ErrorCode.LEDGER_INTEGRITY: "Payment state could not be recorded consistently",
    ErrorCode.AUTH_REQUIRED: "Authentication required",
}

# Recovery suggestions for clients
ERROR_RECOVERY: dict[ErrorCode, str] = {
    ErrorCode.BOOKING_NOT_FOUND: "Verify the booking ID",
    ErrorCode.UNAUTHORIZED: "Only the booking's client can pay for it",
    ErrorCode.BOOKING_NOT_PAYABLE: "Check the booking status; create a new booking if it expired",
    ErrorCode.VALIDATION_FAILED: "Fix the listed problems and submit again",
    ErrorCode.UNKNOWN_PAYMENT_METHOD: "Choose a supported payment method",
    ErrorCode.SESSION_ACTIVE: "Finish or cancel the current payment first",
    ErrorCode.SESSION_NOT_FOUND: "Start a new checkout",
    ErrorCode.SESSION_INVALID: "Start a new checkout",
    ErrorCode.INVALID_WEBHOOK_SIGNATURE: "Verify webhook secret configuration",
    ErrorCode.GATEWAY_ERROR: "Try again or use a different payment method",
    ErrorCode.GATEWAY_NOT_CONFIGURED: "Use a different payment method",
    ErrorCode.PAYMENT_FAILED: "Try again or use a different payment method",
    ErrorCode.LEDGER_INTEGRITY: "Contact support; the payment is under review",
    ErrorCode.AUTH_REQUIRED: "Sign in and try again",
}


class ErrorResponse(BaseModel):
    """Standard error response body."""

    model_config = ConfigDict(strict=True)

    success: bool = False
    error_code: ErrorCode
    message: str
    recovery: str
    details: Optional[dict[str, str]] = None

    @classmethod
    def from_code(
        cls,
        code: ErrorCode,
        details: Optional[dict[str, str]] = None,
        message: Optional[str] = None,
    ) -> "ErrorResponse":
        """Create an ErrorResponse from an error code.

        Args:
            code: The error code
            details: Optional additional context about the error
            message: Overrides the default message for the code

        Returns:
            An ErrorResponse with the message and recovery hint for the code.
        """
        return cls(
            error_code=code,
            message=message or ERROR_MESSAGES[code],
            recovery=ERROR_RECOVERY[code],
            details=details,
        )


class PaymentError(Exception):
    """Exception raised by payment operations at a service boundary.

    Can be caught and converted to an ErrorResponse for API responses.
    """

    def __init__(
        self,
        code: ErrorCode,
        details: Optional[dict[str, str]] = None,
        message: Optional[str] = None,
    ):
        self.code = code
        self.message = message or ERROR_MESSAGES[code]
        self.recovery = ERROR_RECOVERY[code]
        self.details = details
        super().__init__(self.message)

    def to_response(self) -> ErrorResponse:
        """Convert this exception to an ErrorResponse."""
        return ErrorResponse.from_code(self.code, self.details, self.message)


class GatewayError(Exception):
    """Raised when a gateway call fails in a way retrying will not fix."""

    def __init__(
        self,
        message: str,
        *,
        gateway: str | None = None,
        provider_error_code: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.gateway = gateway
        self.provider_error_code = provider_error_code
        self.status_code = status_code


class TransientGatewayError(GatewayError):
    """Raised for gateway failures that may succeed on retry.

    Timeouts, connection errors, HTTP 429 and 5xx responses.
    """


class PaymentIntegrityError(Exception):
    """Raised when a terminal payment write leaves contradictory state.

    This is alert-worthy: booking, session and ledger may disagree.
    """

    def __init__(self, message: str, *, booking_id: str) -> None:
        super().__init__(message)
        self.booking_id = booking_id


# Provider decline codes mapped to messages suitable for end users
GATEWAY_ERROR_MESSAGES: dict[str, str] = {
    # Card/Stripe decline codes
    "card_declined": "Your card was declined. Please try a different card.",
    "expired_card": "Your card has expired. Please use a different card.",
    "insufficient_funds": "Your card has insufficient funds. Please try a different card.",
    "incorrect_cvc": "The security code (CVC) is incorrect. Please check and try again.",
    "processing_error": "A processing error occurred. Please try again.",
    "rate_limit": "Too many requests. Please wait a moment and try again.",
    # PayPal issues
    "INSTRUMENT_DECLINED": "Your PayPal funding source was declined. Please choose another.",
    "PAYER_ACTION_REQUIRED": "Please complete the PayPal approval and try again.",
    "ORDER_NOT_APPROVED": "The PayPal order was not approved.",
    # Maya statuses
    "PAYMENT_EXPIRED": "The payment window expired. Please start a new payment.",
    "PAYMENT_CANCELLED": "The payment was cancelled.",
    "PAYMENT_FAILED": "The payment failed. Please try again.",
}


def get_user_friendly_gateway_message(
    provider_error_code: Optional[str],
    default_message: str = "Payment could not be processed. Please try again.",
) -> str:
    """Get a user-friendly message for a provider error code.

    Args:
        provider_error_code: The provider error code (e.g., 'card_declined').
        default_message: Message to use if error code is unknown.

    Returns:
        User-friendly error message.
    """
    if provider_error_code and provider_error_code in GATEWAY_ERROR_MESSAGES:
        return GATEWAY_ERROR_MESSAGES[provider_error_code]
    return default_message

"""Payment validation.

``PaymentValidator.validate_payment`` runs every check a payment request
must pass before a session or manual transaction is created:

1. Booking eligibility (short-circuits the rest)
2. Amount match against the booking price
3. Duplicate submission
4. Payment method configuration
5. Proof-of-payment file, when one is supplied

Business-rule violations are returned in a ``ValidationResult``, never
raised. A failing lookup is caught per check: the booking check fails
closed, the duplicate check fails open.
"""

import logging
from decimal import Decimal

from paycore.config import METHOD_DISPLAY_NAMES, PaymentConfig
from paycore.models import (
    Booking,
    BookingStatus,
    FileUpload,
    PaymentMethod,
    ValidationResult,
)
from paycore.utils.clock import Clock, utc_now
from paycore.utils.money import format_php, to_decimal

from .bookings import BookingStore
from .duplicates import DuplicateDetector

logger = logging.getLogger(__name__)

# Substrings rejected in proof-of-payment filenames (case-insensitive)
SUSPICIOUS_FILENAME_PATTERNS: tuple[str, ...] = (
    "script",
    "javascript",
    "vbscript",
    "onload",
    "onerror",
)


class PaymentValidator:
    """Validates payment requests against bookings, ledger and configuration."""

    def __init__(
        self,
        config: PaymentConfig,
        bookings: BookingStore,
        duplicates: DuplicateDetector,
        clock: Clock = utc_now,
    ) -> None:
        self.config = config
        self.bookings = bookings
        self.duplicates = duplicates
        self.clock = clock

    def validate_payment(
        self,
        booking_id: str,
        user_id: str,
        amount: Decimal | float,
        method: str,
        file: FileUpload | None = None,
    ) -> ValidationResult:
        """Validate a payment request.

        Args:
            booking_id: Booking being paid
            user_id: Caller; must be the booking's client
            amount: Submitted amount in PHP
            method: Payment method name (see ``PaymentMethod``)
            file: Proof-of-payment metadata for manual methods

        Returns:
            ValidationResult with every hard error joined by "; " and any
            warnings.
        """
        booking_check, booking = self._eligible_booking(booking_id, user_id)
        if booking is None:
            return booking_check

        errors: list[str] = []
        warnings: list[str] = []

        amount_check = self.validate_payment_amount(amount, booking.price)
        if not amount_check.valid and amount_check.error:
            errors.append(amount_check.error)

        duplicate = self.duplicates.check_duplicate(booking_id, amount, method)
        if duplicate.is_duplicate:
            errors.append("Duplicate payment detected. Please wait before trying again.")

        method_check = self.validate_payment_method_config(method)
        if not method_check.valid and method_check.error:
            errors.append(method_check.error)

        if file is not None:
            file_check = self.validate_payment_proof_file(file)
            if not file_check.valid and file_check.error:
                errors.append(file_check.error)
            warnings.extend(file_check.warnings)

        if errors:
            logger.info(
                "Payment validation failed for booking %s: %s",
                booking_id,
                "; ".join(errors),
            )
            return ValidationResult(valid=False, error="; ".join(errors), warnings=warnings)

        return ValidationResult.ok(warnings)

    def validate_booking_for_payment(self, booking_id: str, user_id: str) -> ValidationResult:
        """Check that the booking exists, belongs to the caller and is payable."""
        result, _ = self._eligible_booking(booking_id, user_id)
        return result

    def _eligible_booking(
        self, booking_id: str, user_id: str
    ) -> tuple[ValidationResult, Booking | None]:
        try:
            booking = self.bookings.get_booking(booking_id)
        except Exception:
            logger.exception("Booking lookup failed for %s", booking_id)
            return ValidationResult.fail("Failed to validate booking"), None

        if booking is None:
            return ValidationResult.fail("Booking not found"), None

        if booking.client_id != user_id:
            return ValidationResult.fail("Unauthorized access to booking"), None

        if booking.status != BookingStatus.PENDING_PAYMENT:
            message = (
                "Booking is not in pending payment state. "
                f"Current status: {booking.status.value}"
            )
            return ValidationResult.fail(message), None

        max_age = self.config.policy.booking_max_age.total_seconds()
        if booking.age_seconds(self.clock()) > max_age:
            expired = ValidationResult.fail("Booking has expired. Please create a new booking.")
            return expired, None

        return ValidationResult.ok(), booking

    def validate_payment_amount(
        self, amount: Decimal | float, expected: Decimal | float
    ) -> ValidationResult:
        """Check the submitted amount against the expected price."""
        actual = to_decimal(amount)
        target = to_decimal(expected)

        if actual <= 0:
            return ValidationResult.fail("Payment amount must be greater than zero")

        if target <= 0:
            return ValidationResult.fail("Invalid expected amount")

        if not self.config.validate_amount(actual, target):
            difference = abs(actual - target)
            return ValidationResult.fail(
                f"Payment amount ({format_php(actual)}) does not match expected "
                f"amount ({format_php(target)}). Difference: {format_php(difference)}"
            )

        return ValidationResult.ok()

    def validate_payment_method_config(self, method: str) -> ValidationResult:
        try:
            payment_method = PaymentMethod(method)
        except ValueError:
            return ValidationResult.fail("Unknown payment method")

        if not self.config.is_method_configured(payment_method):
            name = METHOD_DISPLAY_NAMES[payment_method]
            return ValidationResult.fail(f"{name} configuration is incomplete")

        return ValidationResult.ok()

    def validate_payment_proof_file(self, file: FileUpload) -> ValidationResult:
        """Registry size/type check plus the small-file and filename heuristics."""
        errors: list[str] = []
        warnings: list[str] = []

        registry_check = self.config.validate_file_upload(file)
        if not registry_check.valid and registry_check.error:
            errors.append(registry_check.error)

        if file.size < self.config.policy.min_readable_file_size:
            warnings.append(
                "File size is very small. Please ensure the image is clear and readable."
            )

        lowered = file.name.lower()
        if any(pattern in lowered for pattern in SUSPICIOUS_FILENAME_PATTERNS):
            errors.append("Invalid filename detected")

        if errors:
            return ValidationResult(valid=False, error="; ".join(errors), warnings=warnings)
        return ValidationResult.ok(warnings)

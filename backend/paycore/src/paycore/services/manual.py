"""Manual proof-of-payment flow for GCash, Maya wallet and bank transfers.

The client transfers the money outside the platform and uploads a receipt.
Submitting the proof records a pending ledger entry and moves the booking to
``Pending Verification``; an admin then verifies or rejects it, which settles
the booking through ``PaymentLedger`` like any gateway outcome.
"""

import logging
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from paycore.models import (
    MANUAL_PAYMENT_METHODS,
    Booking,
    BookingStatus,
    ErrorCode,
    FileUpload,
    PaymentError,
    PaymentEvent,
    PaymentEventType,
    PaymentMethod,
    ProcessingResult,
    Transaction,
    TransactionStatus,
    TransactionType,
    booking_payment_id,
)
from paycore.utils.clock import Clock, utc_now
from paycore.utils.logging import log_payment_operation
from paycore.utils.money import to_decimal

from .dynamodb import BOOKINGS_TABLE, TRANSACTIONS_TABLE, to_item

if TYPE_CHECKING:
    from .bookings import BookingStore
    from .dynamodb import DynamoDBService
    from .ledger import PaymentLedger
    from .monitoring import PaymentMonitor
    from .validator import PaymentValidator

logger = logging.getLogger(__name__)


class ManualPaymentService:
    """Proof submission and admin verification for manual transfers."""

    def __init__(
        self,
        db: "DynamoDBService",
        bookings: "BookingStore",
        validator: "PaymentValidator",
        ledger: "PaymentLedger",
        monitor: "PaymentMonitor | None" = None,
        clock: Clock = utc_now,
    ) -> None:
        self.db = db
        self.bookings = bookings
        self.validator = validator
        self.ledger = ledger
        self.monitor = monitor
        self.clock = clock

    def submit_proof(
        self,
        booking_id: str,
        user_id: str,
        amount: Decimal | float,
        method: str,
        file: FileUpload,
        proof_url: str,
    ) -> Transaction:
        """Record an uploaded proof of payment.

        Args:
            booking_id: Booking being paid
            user_id: Caller; must be the booking's client
            amount: Transferred amount in PHP
            method: One of the manual methods (gcash, maya, bank)
            file: Metadata of the uploaded receipt
            proof_url: Where the receipt was stored

        Returns:
            The pending transaction awaiting verification.

        Raises:
            PaymentError: VALIDATION_FAILED with the joined validation errors,
                or BOOKING_NOT_PAYABLE when the booking changed concurrently.
        """
        if method not in {m.value for m in MANUAL_PAYMENT_METHODS}:
            raise PaymentError(
                ErrorCode.VALIDATION_FAILED,
                message=f"Payment method {method} does not accept proof uploads",
            )

        result = self.validator.validate_payment(booking_id, user_id, amount, method, file)
        if not result.valid:
            raise PaymentError(ErrorCode.VALIDATION_FAILED, message=result.error)

        booking = self.bookings.get_booking(booking_id, consistent=True)
        if booking is None:
            raise PaymentError(ErrorCode.BOOKING_NOT_FOUND, details={"booking_id": booking_id})

        now = self.clock()
        transaction = Transaction(
            transaction_id=booking_payment_id(booking_id),
            booking_id=booking_id,
            client_id=booking.client_id,
            provider_id=booking.provider_id,
            amount=to_decimal(amount),
            type=TransactionType.BOOKING_PAYMENT,
            status=TransactionStatus.PENDING,
            payment_method=method,
            created_at=now,
        )

        operations: list[dict[str, Any]] = [
            {
                "Put": {
                    "table": TRANSACTIONS_TABLE,
                    "Item": to_item(transaction),
                    "ConditionExpression": (
                        "attribute_not_exists(transaction_id) OR #status = :failed"
                    ),
                    "ExpressionAttributeNames": {"#status": "status"},
                    "ExpressionAttributeValues": {":failed": TransactionStatus.FAILED.value},
                }
            },
            {
                "Update": {
                    "table": BOOKINGS_TABLE,
                    "Key": {"booking_id": booking_id},
                    "UpdateExpression": (
                        "SET #status = :verifying, payment_method = :method, "
                        "payment_proof_url = :url, payment_proof_uploaded_at = :now"
                    ),
                    "ConditionExpression": "#status = :payable",
                    "ExpressionAttributeNames": {"#status": "status"},
                    "ExpressionAttributeValues": {
                        ":verifying": BookingStatus.PENDING_VERIFICATION.value,
                        ":payable": BookingStatus.PENDING_PAYMENT.value,
                        ":method": method,
                        ":url": proof_url,
                        ":now": now,
                    },
                }
            },
        ]
        if not self.db.transact_write(operations):
            logger.warning("Proof submission for booking %s lost a concurrent update", booking_id)
            raise PaymentError(ErrorCode.BOOKING_NOT_PAYABLE, details={"booking_id": booking_id})

        log_payment_operation(
            logger,
            "submit_proof",
            booking_id=booking_id,
            gateway=method,
            amount=transaction.amount,
            status=BookingStatus.PENDING_VERIFICATION.value,
        )
        if self.monitor is not None:
            try:
                self.monitor.track_event(
                    PaymentEvent(
                        event_type=PaymentEventType.PAYMENT_CREATED,
                        booking_id=booking_id,
                        user_id=user_id,
                        amount=transaction.amount,
                        payment_method=method,
                        timestamp=now,
                    )
                )
            except Exception:
                logger.exception("Failed to track payment_created for booking %s", booking_id)
        return transaction

    def verify_payment(self, booking_id: str, admin_id: str) -> ProcessingResult:
        """Confirm a submitted proof; the booking becomes ``Upcoming``."""
        booking = self._booking_in(
            booking_id, BookingStatus.PENDING_VERIFICATION, BookingStatus.UPCOMING
        )
        pending = self.ledger.get_booking_payment(booking_id)
        return self.ledger.record_success(
            booking_id,
            payment_method=booking.payment_method or PaymentMethod.BANK.value,
            verified_by=admin_id,
            amount=pending.amount if pending else None,
            event_type=PaymentEventType.PAYMENT_VERIFIED,
        )

    def reject_payment(self, booking_id: str, admin_id: str, reason: str) -> ProcessingResult:
        """Reject a submitted proof; the booking becomes ``Payment Rejected``."""
        booking = self._booking_in(
            booking_id, BookingStatus.PENDING_VERIFICATION, BookingStatus.PAYMENT_REJECTED
        )
        return self.ledger.record_failure(
            booking_id,
            payment_method=booking.payment_method or PaymentMethod.BANK.value,
            reason=reason,
            rejected_by=admin_id,
            event_type=PaymentEventType.PAYMENT_REJECTED,
        )

    def _booking_in(self, booking_id: str, *statuses: BookingStatus) -> Booking:
        booking = self.bookings.get_booking(booking_id, consistent=True)
        if booking is None:
            raise PaymentError(ErrorCode.BOOKING_NOT_FOUND, details={"booking_id": booking_id})
        if booking.status not in statuses:
            raise PaymentError(
                ErrorCode.BOOKING_NOT_PAYABLE,
                details={"booking_id": booking_id, "status": booking.status.value},
                message=(
                    "Booking is not awaiting payment verification. "
                    f"Current status: {booking.status.value}"
                ),
            )
        return booking

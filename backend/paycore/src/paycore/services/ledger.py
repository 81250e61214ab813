"""Atomic terminal payment transitions.

Every gateway adapter and the manual verification flow settle a booking
through ``PaymentLedger``. A terminal outcome is a single DynamoDB
transaction over the booking, the booking's settling transaction and its
payment session, so a booking can never be ``Upcoming`` without its
completed ledger entry or the reverse.

The completed payment of a booking is stored under the deterministic ID
``BKP-<booking_id>`` with a condition that refuses to overwrite another
completed entry. Re-delivered outcomes are detected from current status
before writing and become no-ops. A capture through a second checkout of an
already paid booking is kept as a pending refund entry.

After a commit, a PaymentEvent is tracked and a notification is queued.
Both are best effort: their failures are logged, never raised.
"""

import logging
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from paycore.models import (
    Booking,
    BookingStatus,
    ErrorCode,
    PaymentError,
    PaymentEvent,
    PaymentEventType,
    PaymentIntegrityError,
    ProcessingOutcome,
    ProcessingResult,
    SessionStatus,
    Transaction,
    TransactionStatus,
    TransactionType,
    booking_payment_id,
    extra_capture_refund_id,
)
from paycore.utils.clock import Clock, utc_now
from paycore.utils.logging import log_payment_operation
from paycore.utils.money import to_decimal

from .dynamodb import BOOKINGS_TABLE, SESSIONS_TABLE, TRANSACTIONS_TABLE, from_item, to_item

if TYPE_CHECKING:
    from .bookings import BookingStore
    from .dynamodb import DynamoDBService
    from .monitoring import PaymentMonitor
    from .notifications import NotificationOutbox
    from .session_guard import SessionGuard

logger = logging.getLogger(__name__)

# Booking statuses a terminal outcome may leave
SETTLEABLE_STATUSES = (BookingStatus.PENDING_PAYMENT, BookingStatus.PENDING_VERIFICATION)

# A cancelled transaction is re-read and retried this many times
MAX_WRITE_ATTEMPTS = 2


class PaymentLedger:
    """Applies captured/declined outcomes to booking, ledger and session."""

    def __init__(
        self,
        db: "DynamoDBService",
        bookings: "BookingStore",
        sessions: "SessionGuard",
        monitor: "PaymentMonitor | None" = None,
        outbox: "NotificationOutbox | None" = None,
        clock: Clock = utc_now,
    ) -> None:
        self.db = db
        self.bookings = bookings
        self.sessions = sessions
        self.monitor = monitor
        self.outbox = outbox
        self.clock = clock

    def get_transaction(self, transaction_id: str) -> Transaction | None:
        item = self.db.get_item(
            TRANSACTIONS_TABLE, {"transaction_id": transaction_id}, consistent_read=True
        )
        return from_item(Transaction, item) if item else None

    def get_booking_payment(self, booking_id: str) -> Transaction | None:
        """The booking's settling transaction, pending or terminal."""
        return self.get_transaction(booking_payment_id(booking_id))

    # Success

    def record_success(
        self,
        booking_id: str,
        *,
        payment_method: str,
        verified_by: str,
        gateway_reference: str | None = None,
        checkout_reference: str | None = None,
        amount: Decimal | float | None = None,
        event_type: PaymentEventType = PaymentEventType.PAYMENT_SUCCESS,
    ) -> ProcessingResult:
        """Settle a booking as paid.

        Args:
            booking_id: Booking being settled
            payment_method: Method the money arrived through
            verified_by: Gateway name or admin ID confirming the payment
            gateway_reference: Provider capture/checkout reference
            checkout_reference: Provider checkout or order that captured
            amount: Captured amount in PHP; defaults to the booking price
            event_type: Telemetry event to emit after the commit

        Returns:
            CAPTURED on the first call, ALREADY_PROCESSED on re-delivery.
            A capture through a different checkout of an already paid booking
            is also ALREADY_PROCESSED, with a pending refund entry recorded.

        Raises:
            PaymentError: BOOKING_NOT_FOUND
            PaymentIntegrityError: the booking was settled as rejected, or the
                write kept failing while the booking was still payable.
        """
        for _ in range(MAX_WRITE_ATTEMPTS):
            booking = self._require_booking(booking_id)
            transaction_id = booking_payment_id(booking_id)

            if booking.status == BookingStatus.UPCOMING:
                settled = self.get_booking_payment(booking_id)
                if (
                    checkout_reference
                    and settled is not None
                    and settled.checkout_reference
                    and settled.checkout_reference != checkout_reference
                ):
                    return self._record_extra_capture(
                        booking,
                        settled,
                        payment_method=payment_method,
                        gateway_reference=gateway_reference,
                        checkout_reference=checkout_reference,
                        amount=amount,
                    )
                logger.info("Booking %s already paid, success is a no-op", booking_id)
                return ProcessingResult(
                    outcome=ProcessingOutcome.ALREADY_PROCESSED,
                    booking_id=booking_id,
                    transaction_id=transaction_id,
                    message="Payment already recorded",
                )

            if booking.status not in SETTLEABLE_STATUSES:
                raise self._integrity_error(
                    booking_id,
                    f"Payment captured for booking {booking_id} "
                    f"in status {booking.status.value}",
                )

            now = self.clock()
            existing = self.get_booking_payment(booking_id)
            transaction = Transaction(
                transaction_id=transaction_id,
                booking_id=booking_id,
                client_id=booking.client_id,
                provider_id=booking.provider_id,
                amount=booking.price if amount is None else to_decimal(amount),
                type=TransactionType.BOOKING_PAYMENT,
                status=TransactionStatus.COMPLETED,
                payment_method=payment_method,
                gateway_reference=gateway_reference,
                checkout_reference=checkout_reference,
                created_at=existing.created_at if existing else now,
                verified_at=now,
                verified_by=verified_by,
            )

            operations: list[dict[str, Any]] = [
                self._booking_update(
                    booking_id,
                    "SET #status = :new_status, payment_verified_at = :now, "
                    "payment_verified_by = :by, payment_method = :method"
                    + (", gateway_reference = :ref" if gateway_reference else ""),
                    {
                        ":new_status": BookingStatus.UPCOMING.value,
                        ":now": now,
                        ":by": verified_by,
                        ":method": payment_method,
                        **({":ref": gateway_reference} if gateway_reference else {}),
                    },
                ),
                {
                    "Put": {
                        "table": TRANSACTIONS_TABLE,
                        "Item": to_item(transaction),
                        "ConditionExpression": (
                            "attribute_not_exists(transaction_id) OR #status <> :completed"
                        ),
                        "ExpressionAttributeNames": {"#status": "status"},
                        "ExpressionAttributeValues": {
                            ":completed": TransactionStatus.COMPLETED.value
                        },
                    }
                },
            ]
            session_op = self._session_update(booking_id, SessionStatus.COMPLETED, now)
            if session_op:
                operations.append(session_op)

            if self.db.transact_write(operations):
                log_payment_operation(
                    logger,
                    "record_success",
                    booking_id=booking_id,
                    gateway=payment_method,
                    amount=transaction.amount,
                    status=BookingStatus.UPCOMING.value,
                    transaction_id=transaction_id,
                )
                self._after_commit(booking, transaction.amount, payment_method, event_type, None)
                return ProcessingResult(
                    outcome=ProcessingOutcome.CAPTURED,
                    booking_id=booking_id,
                    transaction_id=transaction_id,
                )

            logger.warning("Success write for booking %s was cancelled, re-reading", booking_id)

        return self._resolve_cancelled(booking_id, BookingStatus.UPCOMING)

    # Failure

    def record_failure(
        self,
        booking_id: str,
        *,
        payment_method: str,
        reason: str,
        rejected_by: str | None = None,
        event_type: PaymentEventType = PaymentEventType.PAYMENT_FAILED,
    ) -> ProcessingResult:
        """Settle a booking as rejected.

        A failure arriving after the booking was paid never downgrades it.

        Returns:
            DECLINED on the first call, ALREADY_PROCESSED otherwise.

        Raises:
            PaymentError: BOOKING_NOT_FOUND
            PaymentIntegrityError: the write kept failing while the booking
                was still payable.
        """
        for _ in range(MAX_WRITE_ATTEMPTS):
            booking = self._require_booking(booking_id)

            if booking.status not in SETTLEABLE_STATUSES:
                if booking.status == BookingStatus.UPCOMING:
                    logger.warning(
                        "Ignoring failure for already paid booking %s: %s", booking_id, reason
                    )
                return ProcessingResult(
                    outcome=ProcessingOutcome.ALREADY_PROCESSED,
                    booking_id=booking_id,
                    message=f"Booking already {booking.status.value}",
                )

            now = self.clock()
            operations: list[dict[str, Any]] = [
                self._booking_update(
                    booking_id,
                    "SET #status = :new_status, payment_rejection_reason = :reason, "
                    "payment_method = :method",
                    {
                        ":new_status": BookingStatus.PAYMENT_REJECTED.value,
                        ":reason": reason,
                        ":method": payment_method,
                    },
                )
            ]

            pending = self.get_booking_payment(booking_id)
            if pending is not None and pending.status == TransactionStatus.PENDING:
                values: dict[str, Any] = {
                    ":failed": TransactionStatus.FAILED.value,
                    ":pending": TransactionStatus.PENDING.value,
                    ":reason": reason,
                }
                expression = "SET #status = :failed, rejection_reason = :reason"
                if rejected_by:
                    expression += ", verified_by = :by, verified_at = :now"
                    values.update({":by": rejected_by, ":now": now})
                operations.append(
                    {
                        "Update": {
                            "table": TRANSACTIONS_TABLE,
                            "Key": {"transaction_id": pending.transaction_id},
                            "UpdateExpression": expression,
                            "ConditionExpression": "#status = :pending",
                            "ExpressionAttributeNames": {"#status": "status"},
                            "ExpressionAttributeValues": values,
                        }
                    }
                )

            session_op = self._session_update(booking_id, SessionStatus.FAILED, now, reason)
            if session_op:
                operations.append(session_op)

            if self.db.transact_write(operations):
                log_payment_operation(
                    logger,
                    "record_failure",
                    booking_id=booking_id,
                    gateway=payment_method,
                    status=BookingStatus.PAYMENT_REJECTED.value,
                    reason=reason,
                )
                self._after_commit(booking, booking.price, payment_method, event_type, reason)
                return ProcessingResult(
                    outcome=ProcessingOutcome.DECLINED,
                    booking_id=booking_id,
                    message=reason,
                )

            logger.warning("Failure write for booking %s was cancelled, re-reading", booking_id)

        return self._resolve_cancelled(booking_id, BookingStatus.PAYMENT_REJECTED)

    # Helpers

    def _require_booking(self, booking_id: str) -> Booking:
        booking = self.bookings.get_booking(booking_id, consistent=True)
        if booking is None:
            raise PaymentError(ErrorCode.BOOKING_NOT_FOUND, details={"booking_id": booking_id})
        return booking

    def _booking_update(
        self, booking_id: str, expression: str, values: dict[str, Any]
    ) -> dict[str, Any]:
        return {
            "Update": {
                "table": BOOKINGS_TABLE,
                "Key": {"booking_id": booking_id},
                "UpdateExpression": expression,
                "ConditionExpression": "#status IN (:payable, :verifying)",
                "ExpressionAttributeNames": {"#status": "status"},
                "ExpressionAttributeValues": {
                    **values,
                    ":payable": BookingStatus.PENDING_PAYMENT.value,
                    ":verifying": BookingStatus.PENDING_VERIFICATION.value,
                },
            }
        }

    def _session_update(
        self,
        booking_id: str,
        status: SessionStatus,
        now: Any,
        reason: str | None = None,
    ) -> dict[str, Any] | None:
        """Session write for the transaction, only when a pending session exists."""
        session = self.sessions.get_session(booking_id)
        if session is None or session.status != SessionStatus.PENDING:
            return None

        expression = "SET #status = :new_status, updated_at = :now"
        values: dict[str, Any] = {
            ":new_status": status.value,
            ":now": now,
            ":pending": SessionStatus.PENDING.value,
        }
        if reason:
            expression += ", failure_reason = :reason"
            values[":reason"] = reason
        return {
            "Update": {
                "table": SESSIONS_TABLE,
                "Key": {"booking_id": booking_id},
                "UpdateExpression": expression,
                "ConditionExpression": "#status = :pending",
                "ExpressionAttributeNames": {"#status": "status"},
                "ExpressionAttributeValues": values,
            }
        }

    def _resolve_cancelled(self, booking_id: str, target: BookingStatus) -> ProcessingResult:
        """Decide what a repeatedly cancelled transaction means."""
        booking = self._require_booking(booking_id)
        if booking.status not in SETTLEABLE_STATUSES:
            if target == BookingStatus.UPCOMING and booking.status != BookingStatus.UPCOMING:
                raise self._integrity_error(
                    booking_id,
                    f"Payment captured for booking {booking_id} "
                    f"in status {booking.status.value}",
                )
            logger.info(
                "Booking %s reached %s concurrently, treating as processed",
                booking_id,
                booking.status.value,
            )
            return ProcessingResult(
                outcome=ProcessingOutcome.ALREADY_PROCESSED,
                booking_id=booking_id,
                message=f"Booking already {booking.status.value}",
            )

        raise self._integrity_error(
            booking_id,
            f"Terminal write for booking {booking_id} failed while still {booking.status.value}",
        )

    def _record_extra_capture(
        self,
        booking: Booking,
        settled: Transaction,
        *,
        payment_method: str,
        gateway_reference: str | None,
        checkout_reference: str,
        amount: Decimal | float | None,
    ) -> ProcessingResult:
        """Queue a refund for money captured through a superseded checkout."""
        refund = Transaction(
            transaction_id=extra_capture_refund_id(booking.booking_id, checkout_reference),
            booking_id=booking.booking_id,
            client_id=booking.client_id,
            provider_id=booking.provider_id,
            amount=booking.price if amount is None else to_decimal(amount),
            type=TransactionType.REFUND,
            status=TransactionStatus.PENDING,
            payment_method=payment_method,
            gateway_reference=gateway_reference,
            checkout_reference=checkout_reference,
            created_at=self.clock(),
        )
        recorded = self.db.put_item(
            TRANSACTIONS_TABLE,
            to_item(refund),
            condition_expression="attribute_not_exists(transaction_id)",
        )
        if recorded:
            logger.critical(
                "Booking %s paid through %s was captured again through %s, refund %s queued",
                booking.booking_id,
                settled.checkout_reference,
                checkout_reference,
                refund.transaction_id,
            )
        return ProcessingResult(
            outcome=ProcessingOutcome.ALREADY_PROCESSED,
            booking_id=booking.booking_id,
            transaction_id=refund.transaction_id,
            message="Payment already recorded, additional capture queued for refund",
        )

    def _integrity_error(self, booking_id: str, message: str) -> PaymentIntegrityError:
        logger.critical("Payment integrity violation: %s", message)
        return PaymentIntegrityError(message, booking_id=booking_id)

    def _after_commit(
        self,
        booking: Booking,
        amount: Decimal,
        payment_method: str,
        event_type: PaymentEventType,
        failure_reason: str | None,
    ) -> None:
        if self.monitor is not None:
            try:
                self.monitor.track_event(
                    PaymentEvent(
                        event_type=event_type,
                        booking_id=booking.booking_id,
                        user_id=booking.client_id,
                        amount=amount,
                        payment_method=payment_method,
                        timestamp=self.clock(),
                        metadata={"reason": failure_reason} if failure_reason else {},
                    )
                )
            except Exception:
                logger.exception("Failed to track %s event", event_type.value)

        if self.outbox is not None:
            try:
                if failure_reason is None:
                    self.outbox.enqueue_success(booking.booking_id)
                else:
                    self.outbox.enqueue_failure(booking.booking_id, failure_reason)
            except Exception:
                logger.exception(
                    "Failed to queue notification for booking %s", booking.booking_id
                )

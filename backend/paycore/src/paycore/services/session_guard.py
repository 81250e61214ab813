"""Payment session lifecycle and validation."""

import logging
from decimal import Decimal
from typing import TYPE_CHECKING

from paycore.config import PaymentConfig
from paycore.models import ErrorCode, PaymentError, PaymentSession, SessionStatus, ValidationResult
from paycore.utils.clock import Clock, utc_now
from paycore.utils.money import to_decimal

from .dynamodb import SESSIONS_TABLE, from_item, to_item

if TYPE_CHECKING:
    from .dynamodb import DynamoDBService

logger = logging.getLogger(__name__)

SESSION_ERRORS: dict[SessionStatus, str] = {
    SessionStatus.COMPLETED: "Payment session already completed",
    SessionStatus.FAILED: "Payment session failed",
    SessionStatus.CANCELLED: "Payment session was cancelled",
}


class SessionGuard:
    """Creates, validates and cancels payment sessions.

    One session record per booking. A new session may replace the stored
    one only when that one is no longer active (not pending, or pending but
    past the session timeout); the check is a conditional put.
    ``completed`` and ``failed`` are never left: every status write is
    conditioned on ``status = pending``.
    """

    def __init__(
        self,
        db: "DynamoDBService",
        config: PaymentConfig,
        clock: Clock = utc_now,
    ) -> None:
        self.db = db
        self.config = config
        self.clock = clock

    def get_session(self, booking_id: str) -> PaymentSession | None:
        item = self.db.get_item(SESSIONS_TABLE, {"booking_id": booking_id}, consistent_read=True)
        return from_item(PaymentSession, item) if item else None

    def is_active(self, session: PaymentSession) -> bool:
        return session.status == SessionStatus.PENDING and self.config.is_session_valid(
            session.created_at, self.clock()
        )

    def active_session(self, booking_id: str) -> PaymentSession | None:
        """The booking's pending, unexpired session, if any."""
        session = self.get_session(booking_id)
        if session is not None and self.is_active(session):
            return session
        return None

    def validate_session(self, booking_id: str) -> ValidationResult:
        """Check that the booking has a usable session.

        Messages distinguish "already paid" from "failed, retry".
        """
        try:
            session = self.get_session(booking_id)
        except Exception:
            logger.exception("Session lookup failed for booking %s", booking_id)
            return ValidationResult.fail("Failed to validate payment session")

        if session is None:
            return ValidationResult.fail("Payment session not found")

        if not self.config.is_session_valid(session.created_at, self.clock()):
            return ValidationResult.fail("Payment session has expired")

        if session.status in SESSION_ERRORS:
            return ValidationResult.fail(SESSION_ERRORS[session.status])

        return ValidationResult.ok()

    def create_session(
        self,
        booking_id: str,
        user_id: str,
        gateway: str,
        amount: Decimal | float,
    ) -> PaymentSession:
        """Store a new pending session for the booking.

        Raises:
            PaymentError: SESSION_ACTIVE if another session is still active.
        """
        now = self.clock()
        session = PaymentSession(
            booking_id=booking_id,
            user_id=user_id,
            gateway=gateway,
            amount=to_decimal(amount),
            status=SessionStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        cutoff = now - self.config.policy.session_timeout

        created = self.db.put_item(
            SESSIONS_TABLE,
            to_item(session),
            condition_expression=(
                "attribute_not_exists(booking_id) OR #status <> :pending OR created_at <= :cutoff"
            ),
            expression_attribute_values={
                ":pending": SessionStatus.PENDING.value,
                ":cutoff": cutoff.isoformat(),
            },
            expression_attribute_names={"#status": "status"},
        )
        if not created:
            logger.info("Active payment session already exists for booking %s", booking_id)
            raise PaymentError(ErrorCode.SESSION_ACTIVE, details={"booking_id": booking_id})

        logger.info("Payment session created for booking %s via %s", booking_id, gateway)
        return session

    def attach_gateway_reference(
        self,
        booking_id: str,
        gateway_reference: str,
        redirect_url: str | None = None,
    ) -> bool:
        """Record the provider reference on a pending session."""
        values: dict[str, str] = {
            ":ref": gateway_reference,
            ":now": self.clock().isoformat(),
            ":pending": SessionStatus.PENDING.value,
        }
        expression = "SET gateway_reference = :ref, updated_at = :now"
        if redirect_url:
            expression += ", redirect_url = :url"
            values[":url"] = redirect_url

        attrs = self.db.update_item(
            SESSIONS_TABLE,
            {"booking_id": booking_id},
            expression,
            values,
            {"#status": "status"},
            condition_expression="#status = :pending",
        )
        return attrs is not None

    def fail_pending_session(self, booking_id: str, reason: str) -> bool:
        """Mark a pending session failed, e.g. after the gateway refused to create it."""
        attrs = self.db.update_item(
            SESSIONS_TABLE,
            {"booking_id": booking_id},
            "SET #status = :failed, failure_reason = :reason, updated_at = :now",
            {
                ":failed": SessionStatus.FAILED.value,
                ":reason": reason,
                ":now": self.clock().isoformat(),
                ":pending": SessionStatus.PENDING.value,
            },
            {"#status": "status"},
            condition_expression="#status = :pending",
        )
        return attrs is not None

    def cancel_session(self, booking_id: str, user_id: str) -> bool:
        """Cancel the owner's pending session.

        Best effort: an in-flight provider authorization is not cancelled.

        Returns:
            True if the session moved to ``cancelled``.
        """
        attrs = self.db.update_item(
            SESSIONS_TABLE,
            {"booking_id": booking_id},
            "SET #status = :cancelled, updated_at = :now",
            {
                ":cancelled": SessionStatus.CANCELLED.value,
                ":now": self.clock().isoformat(),
                ":pending": SessionStatus.PENDING.value,
                ":user": user_id,
            },
            {"#status": "status"},
            condition_expression="#status = :pending AND user_id = :user",
        )
        if attrs is None:
            logger.info("No cancellable session for booking %s", booking_id)
            return False

        logger.info("Payment session cancelled for booking %s", booking_id)
        return True

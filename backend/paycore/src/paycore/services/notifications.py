"""Payment notification outbox and delivery worker.

The ledger enqueues a message after a terminal transition commits; a
separate worker delivers it through the external notification collaborator.
A delivery failure only changes the message, never the payment state.
"""

import logging
from typing import TYPE_CHECKING, Protocol

from boto3.dynamodb.conditions import Key

from paycore.models import NotificationKind, NotificationMessage, NotificationStatus
from paycore.utils.clock import Clock, utc_now

from .dynamodb import NOTIFICATIONS_TABLE, from_item, to_item

if TYPE_CHECKING:
    from .dynamodb import DynamoDBService

logger = logging.getLogger(__name__)

MAX_DELIVERY_ATTEMPTS = 5


class NotificationSender(Protocol):
    """External notification collaborator."""

    def send_payment_success_notification(self, booking_id: str) -> None: ...

    def send_payment_failure_notification(self, booking_id: str, reason: str) -> None: ...


class LoggingNotificationSender:
    """Default sender that only logs; deployments plug in a real transport."""

    def send_payment_success_notification(self, booking_id: str) -> None:
        logger.info("Payment success notification for booking %s", booking_id)

    def send_payment_failure_notification(self, booking_id: str, reason: str) -> None:
        logger.info("Payment failure notification for booking %s: %s", booking_id, reason)


class NotificationOutbox:
    """Stores pending notification messages keyed by ``<kind>:<booking_id>``."""

    STATUS_INDEX = "status-created_at-index"

    def __init__(self, db: "DynamoDBService", clock: Clock = utc_now) -> None:
        self.db = db
        self.clock = clock

    def enqueue(
        self,
        kind: NotificationKind,
        booking_id: str,
        reason: str | None = None,
    ) -> bool:
        """Insert a message unless one with the same key exists.

        Returns:
            True if a new message was stored.
        """
        message = NotificationMessage(
            message_id=f"{kind.value}:{booking_id}",
            kind=kind,
            booking_id=booking_id,
            reason=reason,
            created_at=self.clock(),
        )
        created = self.db.put_item(
            NOTIFICATIONS_TABLE,
            to_item(message),
            condition_expression="attribute_not_exists(message_id)",
        )
        if not created:
            logger.info("Notification %s already queued", message.message_id)
        return created

    def enqueue_success(self, booking_id: str) -> bool:
        return self.enqueue(NotificationKind.PAYMENT_SUCCESS, booking_id)

    def enqueue_failure(self, booking_id: str, reason: str) -> bool:
        return self.enqueue(NotificationKind.PAYMENT_FAILURE, booking_id, reason)

    def get(self, message_id: str) -> NotificationMessage | None:
        item = self.db.get_item(NOTIFICATIONS_TABLE, {"message_id": message_id})
        return from_item(NotificationMessage, item) if item else None

    def fetch_pending(self, limit: int = 50) -> list[NotificationMessage]:
        """Oldest pending messages first."""
        items = self.db.query(
            NOTIFICATIONS_TABLE,
            Key("status").eq(NotificationStatus.PENDING.value),
            index_name=self.STATUS_INDEX,
            limit=limit,
        )
        return [from_item(NotificationMessage, item) for item in items]

    def mark_sent(self, message: NotificationMessage) -> None:
        self.db.update_item(
            NOTIFICATIONS_TABLE,
            {"message_id": message.message_id},
            "SET #status = :sent, attempts = :attempts REMOVE last_error",
            {
                ":sent": NotificationStatus.SENT.value,
                ":attempts": message.attempts + 1,
            },
            {"#status": "status"},
        )

    def mark_failed(self, message: NotificationMessage, error: str) -> NotificationStatus:
        """Record a failed attempt; the message fails for good after the last attempt."""
        attempts = message.attempts + 1
        status = (
            NotificationStatus.FAILED
            if attempts >= MAX_DELIVERY_ATTEMPTS
            else NotificationStatus.PENDING
        )
        self.db.update_item(
            NOTIFICATIONS_TABLE,
            {"message_id": message.message_id},
            "SET #status = :status, attempts = :attempts, last_error = :error",
            {
                ":status": status.value,
                ":attempts": attempts,
                ":error": error[:1000],
            },
            {"#status": "status"},
        )
        return status


class NotificationWorker:
    """Delivers pending outbox messages through a ``NotificationSender``."""

    def __init__(self, outbox: NotificationOutbox, sender: NotificationSender) -> None:
        self.outbox = outbox
        self.sender = sender

    def drain(self, limit: int = 50) -> dict[str, int]:
        """Deliver up to ``limit`` pending messages.

        Returns:
            Counts of ``sent`` and ``failed`` deliveries in this run.
        """
        counts = {"sent": 0, "failed": 0}
        for message in self.outbox.fetch_pending(limit):
            try:
                self._deliver(message)
            except Exception as e:
                status = self.outbox.mark_failed(message, str(e))
                logger.warning(
                    "Notification %s delivery failed (attempt %d, now %s): %s",
                    message.message_id,
                    message.attempts + 1,
                    status.value,
                    e,
                )
                counts["failed"] += 1
                continue

            self.outbox.mark_sent(message)
            counts["sent"] += 1
        return counts

    def _deliver(self, message: NotificationMessage) -> None:
        if message.kind == NotificationKind.PAYMENT_SUCCESS:
            self.sender.send_payment_success_notification(message.booking_id)
        else:
            self.sender.send_payment_failure_notification(
                message.booking_id, message.reason or "Payment was not completed"
            )

"""Webhook event log for idempotency and auditing."""

import hashlib
import logging
from typing import TYPE_CHECKING

from paycore.models import WebhookEventLog
from paycore.utils.clock import Clock, utc_now

from .dynamodb import WEBHOOK_EVENTS_TABLE, from_item, to_item

if TYPE_CHECKING:
    from .dynamodb import DynamoDBService

logger = logging.getLogger(__name__)


def compute_payload_hash(payload: bytes) -> str:
    """Hex SHA-256 of a raw webhook body."""
    return hashlib.sha256(payload).hexdigest()


class WebhookEventStore:
    """Records every webhook delivery keyed by its event ID."""

    def __init__(self, db: "DynamoDBService", clock: Clock = utc_now) -> None:
        self.db = db
        self.clock = clock

    def get(self, event_id: str) -> WebhookEventLog | None:
        item = self.db.get_item(WEBHOOK_EVENTS_TABLE, {"event_id": event_id})
        return from_item(WebhookEventLog, item) if item else None

    def is_processed(self, event_id: str) -> bool:
        """True once an event was handled; errored events may be redelivered."""
        existing = self.get(event_id)
        return existing is not None and existing.processing_result != "error"

    def log_event(
        self,
        *,
        event_id: str,
        gateway: str,
        event_type: str,
        payload: bytes,
        booking_id: str | None,
        processing_result: str,
        error_message: str | None = None,
    ) -> None:
        entry = WebhookEventLog(
            event_id=event_id,
            gateway=gateway,
            event_type=event_type,
            processed_at=self.clock(),
            payload_hash=compute_payload_hash(payload),
            booking_id=booking_id,
            processing_result=processing_result,
            error_message=error_message,
        )
        self.db.put_item(WEBHOOK_EVENTS_TABLE, to_item(entry))

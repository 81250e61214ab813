"""Unit tests for the notification outbox and delivery worker."""

from unittest.mock import MagicMock

import pytest

from paycore.models import NotificationKind, NotificationStatus
from paycore.services.notifications import (
    MAX_DELIVERY_ATTEMPTS,
    LoggingNotificationSender,
    NotificationWorker,
)


@pytest.fixture
def sender() -> MagicMock:
    return MagicMock()


@pytest.fixture
def worker(outbox, sender: MagicMock) -> NotificationWorker:
    return NotificationWorker(outbox, sender)


class TestOutbox:
    def test_enqueue_success(self, outbox, clock) -> None:
        assert outbox.enqueue_success("BK-1001") is True

        message = outbox.get("payment_success:BK-1001")
        assert message.kind == NotificationKind.PAYMENT_SUCCESS
        assert message.status == NotificationStatus.PENDING
        assert message.attempts == 0
        assert message.created_at == clock()

    def test_enqueue_is_idempotent(self, outbox) -> None:
        assert outbox.enqueue_failure("BK-1001", "Card declined") is True
        assert outbox.enqueue_failure("BK-1001", "Card declined again") is False

        assert outbox.get("payment_failure:BK-1001").reason == "Card declined"

    def test_fetch_pending_oldest_first(self, outbox, clock) -> None:
        outbox.enqueue_success("BK-1")
        clock.advance(seconds=5)
        outbox.enqueue_success("BK-2")
        clock.advance(seconds=5)
        outbox.enqueue_success("BK-3")

        pending = outbox.fetch_pending(limit=2)

        assert [m.booking_id for m in pending] == ["BK-1", "BK-2"]


class TestWorker:
    def test_delivers_and_marks_sent(self, outbox, worker, sender) -> None:
        outbox.enqueue_success("BK-1")
        outbox.enqueue_failure("BK-2", "Payment expired")

        counts = worker.drain()

        assert counts == {"sent": 2, "failed": 0}
        sender.send_payment_success_notification.assert_called_once_with("BK-1")
        sender.send_payment_failure_notification.assert_called_once_with(
            "BK-2", "Payment expired"
        )
        message = outbox.get("payment_success:BK-1")
        assert message.status == NotificationStatus.SENT
        assert message.attempts == 1
        assert outbox.fetch_pending() == []

    def test_failed_delivery_stays_pending(self, outbox, worker, sender) -> None:
        sender.send_payment_success_notification.side_effect = ConnectionError("SMTP down")
        outbox.enqueue_success("BK-1")

        counts = worker.drain()

        assert counts == {"sent": 0, "failed": 1}
        message = outbox.get("payment_success:BK-1")
        assert message.status == NotificationStatus.PENDING
        assert message.attempts == 1
        assert message.last_error == "SMTP down"

    def test_gives_up_after_max_attempts(self, outbox, worker, sender) -> None:
        sender.send_payment_success_notification.side_effect = ConnectionError("SMTP down")
        outbox.enqueue_success("BK-1")

        for _ in range(MAX_DELIVERY_ATTEMPTS):
            worker.drain()

        message = outbox.get("payment_success:BK-1")
        assert message.status == NotificationStatus.FAILED
        assert message.attempts == MAX_DELIVERY_ATTEMPTS
        assert worker.drain() == {"sent": 0, "failed": 0}

    def test_recovered_delivery_clears_error(self, outbox, worker, sender) -> None:
        sender.send_payment_success_notification.side_effect = [ConnectionError("timeout"), None]
        outbox.enqueue_success("BK-1")

        worker.drain()
        worker.drain()

        message = outbox.get("payment_success:BK-1")
        assert message.status == NotificationStatus.SENT
        assert message.attempts == 2
        assert message.last_error is None

    def test_logging_sender(self, outbox) -> None:
        outbox.enqueue_failure("BK-1", "Declined")
        worker = NotificationWorker(outbox, LoggingNotificationSender())

        assert worker.drain() == {"sent": 1, "failed": 0}

"""Unit tests for DuplicateDetector."""

import datetime as dt
from decimal import Decimal
from unittest.mock import MagicMock

from conftest import CLIENT_ID, PROVIDER_ID
from paycore.models import Transaction, TransactionStatus
from paycore.services.duplicates import DuplicateDetector
from paycore.services.dynamodb import TRANSACTIONS_TABLE, to_item

AMOUNT = Decimal("1500.00")


def store(db, transaction_id: str, created_at: dt.datetime, **overrides) -> None:
    fields = {
        "transaction_id": transaction_id,
        "booking_id": "BK-1001",
        "client_id": CLIENT_ID,
        "provider_id": PROVIDER_ID,
        "amount": AMOUNT,
        "status": TransactionStatus.PENDING,
        "payment_method": "gcash",
        "created_at": created_at,
    }
    fields.update(overrides)
    db.put_item(TRANSACTIONS_TABLE, to_item(Transaction(**fields)))


class TestCheckDuplicate:
    def test_no_transactions(self, duplicates) -> None:
        result = duplicates.check_duplicate("BK-1001", AMOUNT, "gcash")

        assert result.is_duplicate is False
        assert result.existing_transaction is None
        assert result.time_difference is None

    def test_four_minutes_old_is_duplicate(self, duplicates, db, clock) -> None:
        store(db, "TXN-1", clock() - dt.timedelta(minutes=4))

        result = duplicates.check_duplicate("BK-1001", AMOUNT, "gcash")

        assert result.is_duplicate is True
        assert result.time_difference == 240
        assert result.existing_transaction is not None
        assert result.existing_transaction["transaction_id"] == "TXN-1"

    def test_six_minutes_old_is_returned_but_not_duplicate(self, duplicates, db, clock) -> None:
        store(db, "TXN-1", clock() - dt.timedelta(minutes=6))

        result = duplicates.check_duplicate("BK-1001", AMOUNT, "gcash")

        assert result.is_duplicate is False
        assert result.existing_transaction is not None
        assert result.time_difference == 360

    def test_newest_match_wins(self, duplicates, db, clock) -> None:
        store(db, "TXN-old", clock() - dt.timedelta(minutes=30))
        store(db, "TXN-new", clock() - dt.timedelta(minutes=1))

        result = duplicates.check_duplicate("BK-1001", AMOUNT, "gcash")

        assert result.is_duplicate is True
        assert result.existing_transaction["transaction_id"] == "TXN-new"

    def test_different_amount_or_method_is_not_a_match(self, duplicates, db, clock) -> None:
        recent = clock() - dt.timedelta(minutes=1)
        store(db, "TXN-amount", recent, amount=Decimal("1200.00"))
        store(db, "TXN-method", recent, payment_method="bank")

        assert duplicates.check_duplicate("BK-1001", AMOUNT, "gcash").is_duplicate is False

    def test_failed_transactions_are_ignored(self, duplicates, db, clock) -> None:
        store(
            db,
            "TXN-failed",
            clock() - dt.timedelta(minutes=1),
            status=TransactionStatus.FAILED,
        )

        assert duplicates.check_duplicate("BK-1001", AMOUNT, "gcash").is_duplicate is False

    def test_store_failure_is_not_a_duplicate(self, payment_config, clock) -> None:
        db = MagicMock()
        db.query.side_effect = RuntimeError("throttled")
        detector = DuplicateDetector(db, payment_config, clock)

        result = detector.check_duplicate("BK-1001", AMOUNT, "gcash")

        assert result.is_duplicate is False

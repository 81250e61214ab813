"""Duplicate-submission detection.

A time-windowed read against the transactions table. It absorbs double
clicks and retry buttons; it is not a lock. Two submissions racing within
milliseconds can both pass, which is why the completed booking payment is
additionally protected by its deterministic ledger ID.
"""

import logging
from decimal import Decimal
from typing import TYPE_CHECKING

from boto3.dynamodb.conditions import Attr, Key

from paycore.config import PaymentConfig
from paycore.models import DuplicateCheck, Transaction, TransactionStatus
from paycore.utils.clock import Clock, utc_now
from paycore.utils.money import to_decimal

from .dynamodb import TRANSACTIONS_TABLE, from_item

if TYPE_CHECKING:
    from .dynamodb import DynamoDBService

logger = logging.getLogger(__name__)


class DuplicateDetector:
    """Finds a recent matching transaction for (booking, amount, method)."""

    BOOKING_INDEX = "booking_id-created_at-index"

    def __init__(
        self,
        db: "DynamoDBService",
        config: PaymentConfig,
        clock: Clock = utc_now,
    ) -> None:
        self.db = db
        self.config = config
        self.clock = clock

    def find_latest(
        self, booking_id: str, amount: Decimal | float, method: str
    ) -> Transaction | None:
        """Newest pending/completed transaction matching all three keys."""
        # No Limit: DynamoDB applies Limit before the filter
        items = self.db.query(
            TRANSACTIONS_TABLE,
            Key("booking_id").eq(booking_id),
            index_name=self.BOOKING_INDEX,
            filter_expression=(
                Attr("amount").eq(to_decimal(amount))
                & Attr("payment_method").eq(method)
                & Attr("status").is_in(
                    [TransactionStatus.PENDING.value, TransactionStatus.COMPLETED.value]
                )
            ),
            scan_index_forward=False,
            limit=1,
        )
        return from_item(Transaction, items[0]) if items else None

    def check_duplicate(
        self, booking_id: str, amount: Decimal | float, method: str
    ) -> DuplicateCheck:
        """Report whether a matching transaction falls inside the duplicate window.

        A store failure degrades to "not a duplicate".
        """
        try:
            existing = self.find_latest(booking_id, amount, method)
        except Exception:
            logger.exception("Duplicate check failed for booking %s", booking_id)
            return DuplicateCheck(is_duplicate=False)

        if existing is None:
            return DuplicateCheck(is_duplicate=False)

        elapsed = (self.clock() - existing.created_at).total_seconds()
        window = self.config.policy.duplicate_window.total_seconds()
        return DuplicateCheck(
            is_duplicate=elapsed < window,
            existing_transaction=existing.model_dump(mode="json"),
            time_difference=elapsed,
        )

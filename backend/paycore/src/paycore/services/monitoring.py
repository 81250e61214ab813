"""Payment monitoring: event log, daily metrics and anomaly checks.

Events are appended to the events table and counted into a per-date
metrics row with DynamoDB ``ADD``, so concurrent writers never lose an
increment. Anomalies are reported and optionally persisted as alerts;
acting on them is left to external alerting.
"""

import datetime as dt
import logging
import math
import uuid
from collections import Counter, defaultdict
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from boto3.dynamodb.conditions import Attr, Key

from paycore.models import (
    AnomalyReport,
    BookingStatus,
    DailyMetrics,
    MethodStats,
    PaymentEvent,
    PaymentEventType,
    PaymentMetrics,
)
from paycore.utils.clock import Clock, utc_now

from .dynamodb import ALERTS_TABLE, BOOKINGS_TABLE, EVENTS_TABLE, METRICS_TABLE, to_item

if TYPE_CHECKING:
    from .dynamodb import DynamoDBService

logger = logging.getLogger(__name__)

# Daily counter incremented by each event type
EVENT_COUNTERS: dict[PaymentEventType, str] = {
    PaymentEventType.PAYMENT_CREATED: "total_payments",
    PaymentEventType.PAYMENT_SUCCESS: "successful_payments",
    PaymentEventType.PAYMENT_FAILED: "failed_payments",
    PaymentEventType.PAYMENT_VERIFIED: "verified_payments",
    PaymentEventType.PAYMENT_REJECTED: "rejected_payments",
}

HIGH_FAILURE_MIN_PAYMENTS = 10
HIGH_FAILURE_RATIO = 0.2
UNUSUAL_AMOUNT_SIGMAS = 3
SLOW_VERIFICATION_AFTER = dt.timedelta(hours=1)
DUPLICATE_LOOKBACK = dt.timedelta(hours=1)
AMOUNT_BASELINE = dt.timedelta(days=7)


def _iso(value: dt.datetime) -> str:
    return value.astimezone(dt.UTC).isoformat()


class PaymentMonitor:
    """Tracks payment lifecycle events and derives metrics and anomalies."""

    EVENT_TYPE_INDEX = "event_type-timestamp-index"
    BOOKING_STATUS_INDEX = "status-index"

    def __init__(self, db: "DynamoDBService", clock: Clock = utc_now) -> None:
        self.db = db
        self.clock = clock

    # Event tracking

    def track_event(self, event: PaymentEvent) -> str:
        """Append an event and increment that day's counter.

        Returns:
            The generated event ID.
        """
        event_id = f"EVT-{uuid.uuid4().hex[:16].upper()}"
        timestamp = event.timestamp.astimezone(dt.UTC)
        date = timestamp.date().isoformat()

        item = to_item(event)
        item.update(
            {
                "event_id": event_id,
                "timestamp": _iso(timestamp),
                "date": date,
                "hour": timestamp.hour,
            }
        )
        self.db.put_item(EVENTS_TABLE, item)

        counters: dict[str, int | Decimal] = {EVENT_COUNTERS[event.event_type]: 1}
        if event.event_type == PaymentEventType.PAYMENT_CREATED:
            counters["total_amount"] = event.amount
        self.db.increment(METRICS_TABLE, {"date": date}, counters)

        logger.info(
            "Tracked %s for booking %s (%s)",
            event.event_type.value,
            event.booking_id,
            event_id,
        )
        return event_id

    # Metrics

    def get_daily_metrics(self, start: dt.date, end: dt.date) -> list[DailyMetrics]:
        """Daily rows in ``[start, end]``; days without events are omitted."""
        days = (end - start).days
        keys = [{"date": (start + dt.timedelta(days=i)).isoformat()} for i in range(days + 1)]
        items = self.db.batch_get(METRICS_TABLE, keys)
        rows = [
            DailyMetrics(
                date=item["date"],
                total_payments=int(item.get("total_payments", 0)),
                successful_payments=int(item.get("successful_payments", 0)),
                failed_payments=int(item.get("failed_payments", 0)),
                verified_payments=int(item.get("verified_payments", 0)),
                rejected_payments=int(item.get("rejected_payments", 0)),
                total_amount=Decimal(item.get("total_amount", 0)),
            )
            for item in items
        ]
        return sorted(rows, key=lambda row: row.date)

    def get_metrics(self, start: dt.date, end: dt.date) -> PaymentMetrics:
        """Sum daily counters over ``[start, end]`` and derive rates."""
        metrics = PaymentMetrics()
        for row in self.get_daily_metrics(start, end):
            metrics.total_payments += row.total_payments
            metrics.successful_payments += row.successful_payments
            metrics.failed_payments += row.failed_payments
            metrics.verified_payments += row.verified_payments
            metrics.rejected_payments += row.rejected_payments
            metrics.total_amount += row.total_amount

        if metrics.total_payments > 0:
            metrics.pending_payments = max(
                metrics.total_payments
                - metrics.successful_payments
                - metrics.failed_payments
                - metrics.verified_payments
                - metrics.rejected_payments,
                0,
            )
            metrics.success_rate = metrics.successful_payments / metrics.total_payments
            metrics.average_amount = metrics.total_amount / metrics.total_payments
        return metrics

    def get_payment_method_stats(self, start: dt.date, end: dt.date) -> dict[str, MethodStats]:
        """Volume and success rate per payment method over ``[start, end]``."""
        since = dt.datetime.combine(start, dt.time.min, tzinfo=dt.UTC)
        until = dt.datetime.combine(end, dt.time.max, tzinfo=dt.UTC)
        created = self._events_between(PaymentEventType.PAYMENT_CREATED, since, until)
        succeeded = self._events_between(PaymentEventType.PAYMENT_SUCCESS, since, until)
        succeeded += self._events_between(PaymentEventType.PAYMENT_VERIFIED, since, until)

        stats: dict[str, MethodStats] = defaultdict(MethodStats)
        for event in created:
            method_stats = stats[event["payment_method"]]
            method_stats.count += 1
            method_stats.amount += Decimal(event["amount"])

        successes = Counter(event["payment_method"] for event in succeeded)
        for method, method_stats in stats.items():
            method_stats.success_rate = successes[method] / method_stats.count
        return dict(stats)

    # Anomalies

    def check_anomalies(self, now: dt.datetime | None = None) -> AnomalyReport:
        """Run every anomaly rule. A rule that cannot be evaluated reports False."""
        current = now or self.clock()
        return AnomalyReport(
            high_failure_rate=self._safe(self._check_high_failure_rate, current),
            unusual_amounts=self._safe(self._check_unusual_amounts, current),
            duplicate_payments=self._safe(self._check_duplicate_payments, current),
            slow_processing=self._safe(self._check_slow_processing, current),
        )

    def record_alert(self, report: AnomalyReport, now: dt.datetime | None = None) -> str | None:
        """Persist a report with at least one flag set.

        Returns:
            The alert ID, or None when nothing was flagged.
        """
        if not report.any:
            return None

        current = now or self.clock()
        alert_id = f"ALERT-{uuid.uuid4().hex[:12].upper()}"
        self.db.put_item(
            ALERTS_TABLE,
            {
                "alert_id": alert_id,
                "anomalies": report.model_dump(),
                "timestamp": current.isoformat(),
                "resolved": False,
            },
        )
        logger.warning("Payment anomalies detected: %s", report.model_dump())
        return alert_id

    def _safe(self, check: Any, now: dt.datetime) -> bool:
        try:
            return bool(check(now))
        except Exception:
            logger.exception("Anomaly check %s failed", check.__name__)
            return False

    def _check_high_failure_rate(self, now: dt.datetime) -> bool:
        today = now.date()
        metrics = self.get_metrics(today - dt.timedelta(days=1), today)
        return (
            metrics.total_payments > HIGH_FAILURE_MIN_PAYMENTS
            and metrics.failed_payments / metrics.total_payments > HIGH_FAILURE_RATIO
        )

    def _check_unusual_amounts(self, now: dt.datetime) -> bool:
        baseline = self._events_between(
            PaymentEventType.PAYMENT_CREATED, now - AMOUNT_BASELINE, now
        )
        if not baseline:
            return False

        amounts = [float(event["amount"]) for event in baseline]
        mean = sum(amounts) / len(amounts)
        std_dev = math.sqrt(sum((a - mean) ** 2 for a in amounts) / len(amounts))

        day_ago = _iso(now - dt.timedelta(days=1))
        recent = [float(e["amount"]) for e in baseline if e["timestamp"] >= day_ago]
        return any(abs(amount - mean) > UNUSUAL_AMOUNT_SIGMAS * std_dev for amount in recent)

    def _check_duplicate_payments(self, now: dt.datetime) -> bool:
        events = self._events_between(
            PaymentEventType.PAYMENT_CREATED, now - DUPLICATE_LOOKBACK, now
        )
        groups = Counter(
            (e["booking_id"], Decimal(e["amount"]), e["payment_method"]) for e in events
        )
        return any(count > 1 for count in groups.values())

    def _check_slow_processing(self, now: dt.datetime) -> bool:
        cutoff = _iso(now - SLOW_VERIFICATION_AFTER)
        items = self.db.query(
            BOOKINGS_TABLE,
            Key("status").eq(BookingStatus.PENDING_VERIFICATION.value),
            index_name=self.BOOKING_STATUS_INDEX,
            filter_expression=Attr("payment_proof_uploaded_at").lte(cutoff),
            limit=1,
        )
        return bool(items)

    def _events_between(
        self,
        event_type: PaymentEventType,
        since: dt.datetime,
        until: dt.datetime,
    ) -> list[dict[str, Any]]:
        return self.db.query(
            EVENTS_TABLE,
            Key("event_type").eq(event_type.value)
            & Key("timestamp").between(_iso(since), _iso(until)),
            index_name=self.EVENT_TYPE_INDEX,
        )

"""Admin endpoints: manual verification, metrics, anomalies, notifications.

Require the ``admin`` role in the ``x-user-role`` header.
"""

import datetime as dt

from fastapi import APIRouter, Depends, Query

from api.dependencies import (
    get_admin_id,
    get_manual_payment_service,
    get_notification_worker,
    get_payment_config,
    get_payment_monitor,
)
from api.models.payments import (
    AnomalyResponse,
    DrainResponse,
    MetricsResponse,
    RejectPaymentRequest,
)
from paycore.config import PaymentConfig
from paycore.models import ErrorCode, PaymentError, ProcessingResult
from paycore.services.manual import ManualPaymentService
from paycore.services.monitoring import PaymentMonitor
from paycore.services.notifications import NotificationWorker

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post(
    "/payments/{booking_id}/verify",
    summary="Verify manual payment",
    response_model=ProcessingResult,
)
def verify_payment(
    booking_id: str,
    admin_id: str = Depends(get_admin_id),
    manual: ManualPaymentService = Depends(get_manual_payment_service),
) -> ProcessingResult:
    return manual.verify_payment(booking_id, admin_id)


@router.post(
    "/payments/{booking_id}/reject",
    summary="Reject manual payment",
    response_model=ProcessingResult,
)
def reject_payment(
    booking_id: str,
    body: RejectPaymentRequest,
    admin_id: str = Depends(get_admin_id),
    manual: ManualPaymentService = Depends(get_manual_payment_service),
) -> ProcessingResult:
    return manual.reject_payment(booking_id, admin_id, body.reason)


@router.get(
    "/payments/metrics",
    summary="Payment metrics",
    description="Totals, daily rows and per-method stats. Defaults to the last 7 days.",
    response_model=MetricsResponse,
)
def get_metrics(
    start: dt.date | None = Query(default=None),
    end: dt.date | None = Query(default=None),
    _: str = Depends(get_admin_id),
    monitor: PaymentMonitor = Depends(get_payment_monitor),
) -> MetricsResponse:
    end_date = end or dt.datetime.now(dt.UTC).date()
    start_date = start or end_date - dt.timedelta(days=6)
    if start_date > end_date:
        raise PaymentError(
            ErrorCode.VALIDATION_FAILED, message="start must not be after end"
        )

    return MetricsResponse(
        start=start_date.isoformat(),
        end=end_date.isoformat(),
        totals=monitor.get_metrics(start_date, end_date),
        daily=monitor.get_daily_metrics(start_date, end_date),
        by_method=monitor.get_payment_method_stats(start_date, end_date),
    )


@router.get(
    "/payments/anomalies",
    summary="Run anomaly checks",
    description="Evaluates every anomaly rule; with `record=true` a flagged report is stored.",
    response_model=AnomalyResponse,
)
def get_anomalies(
    record: bool = Query(default=False),
    _: str = Depends(get_admin_id),
    monitor: PaymentMonitor = Depends(get_payment_monitor),
) -> AnomalyResponse:
    report = monitor.check_anomalies()
    alert_id = monitor.record_alert(report) if record else None
    return AnomalyResponse(anomalies=report, alert_id=alert_id)


@router.get(
    "/payments/config",
    summary="Missing payment configuration",
    description="Environment variables still missing, per payment method.",
)
def get_config_status(
    _: str = Depends(get_admin_id),
    config: PaymentConfig = Depends(get_payment_config),
) -> dict[str, list[str]]:
    return config.describe_missing()


@router.post(
    "/notifications/drain",
    summary="Deliver pending notifications",
    response_model=DrainResponse,
)
def drain_notifications(
    limit: int = Query(default=50, ge=1, le=500),
    _: str = Depends(get_admin_id),
    worker: NotificationWorker = Depends(get_notification_worker),
) -> DrainResponse:
    return DrainResponse(**worker.drain(limit))

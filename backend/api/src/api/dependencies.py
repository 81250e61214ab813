"""FastAPI dependency injection providers for payment services.

Factory functions use @lru_cache so every service is a process-wide
singleton, built lazily on first use.

Usage in routes:
    from api.dependencies import get_orchestrator

    @router.post("/payments/checkout")
    def start_checkout(
        orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
    ):
        ...

Service Dependency Graph:
    PaymentConfig (from environment)
    DynamoDBService (singleton via get_dynamodb_service)
        ├── BookingStore
        ├── SessionGuard
        ├── PaymentMonitor
        ├── NotificationOutbox ── NotificationWorker
        ├── WebhookEventStore
        ├── PaymentValidator (BookingStore, DuplicateDetector)
        └── PaymentLedger (BookingStore, SessionGuard, PaymentMonitor, NotificationOutbox)
                ├── MayaWalletAdapter / PayPalOrderAdapter / StripeCheckoutAdapter
                │       └── PaymentOrchestrator
                └── ManualPaymentService

Testing:
    Use reset_services() to clear cached instances between tests.
"""

from functools import lru_cache

from fastapi import Header

from paycore.config import PaymentConfig
from paycore.models import ErrorCode, PaymentError, PaymentMethod
from paycore.services.bookings import BookingStore
from paycore.services.duplicates import DuplicateDetector
from paycore.services.dynamodb import get_dynamodb_service
from paycore.services.gateways import (
    GatewayAdapter,
    MayaWalletAdapter,
    PayPalOrderAdapter,
    StripeCheckoutAdapter,
)
from paycore.services.ledger import PaymentLedger
from paycore.services.manual import ManualPaymentService
from paycore.services.monitoring import PaymentMonitor
from paycore.services.notifications import (
    LoggingNotificationSender,
    NotificationOutbox,
    NotificationWorker,
)
from paycore.services.orchestrator import PaymentOrchestrator
from paycore.services.session_guard import SessionGuard
from paycore.services.validator import PaymentValidator
from paycore.services.webhook_log import WebhookEventStore

ADMIN_ROLE = "admin"


# === Caller identity ===


def get_current_user_id(x_user_id: str | None = Header(default=None)) -> str:
    """Caller ID forwarded by the API gateway after JWT validation."""
    if not x_user_id:
        raise PaymentError(ErrorCode.AUTH_REQUIRED)
    return x_user_id


def get_admin_id(
    x_user_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
) -> str:
    """Caller ID, required to carry the admin role."""
    user_id = get_current_user_id(x_user_id)
    if x_user_role != ADMIN_ROLE:
        raise PaymentError(ErrorCode.UNAUTHORIZED, details={"required_role": ADMIN_ROLE})
    return user_id


# === Services ===


@lru_cache
def get_payment_config() -> PaymentConfig:
    return PaymentConfig.from_env()


@lru_cache
def get_booking_store() -> BookingStore:
    return BookingStore(get_dynamodb_service())


@lru_cache
def get_session_guard() -> SessionGuard:
    return SessionGuard(get_dynamodb_service(), get_payment_config())


@lru_cache
def get_payment_monitor() -> PaymentMonitor:
    return PaymentMonitor(get_dynamodb_service())


@lru_cache
def get_notification_outbox() -> NotificationOutbox:
    return NotificationOutbox(get_dynamodb_service())


@lru_cache
def get_notification_worker() -> NotificationWorker:
    return NotificationWorker(get_notification_outbox(), LoggingNotificationSender())


@lru_cache
def get_webhook_event_store() -> WebhookEventStore:
    return WebhookEventStore(get_dynamodb_service())


@lru_cache
def get_payment_validator() -> PaymentValidator:
    """Get cached PaymentValidator instance.

    Returns:
        PaymentValidator wired to the booking store and duplicate detector.
    """
    config = get_payment_config()
    return PaymentValidator(
        config,
        get_booking_store(),
        DuplicateDetector(get_dynamodb_service(), config),
    )


@lru_cache
def get_payment_ledger() -> PaymentLedger:
    """Get cached PaymentLedger instance.

    Returns:
        PaymentLedger that tracks events and queues notifications after commits.
    """
    return PaymentLedger(
        get_dynamodb_service(),
        get_booking_store(),
        get_session_guard(),
        monitor=get_payment_monitor(),
        outbox=get_notification_outbox(),
    )


@lru_cache
def get_maya_adapter() -> MayaWalletAdapter:
    return MayaWalletAdapter(
        get_payment_config(),
        get_session_guard(),
        get_payment_ledger(),
        get_webhook_event_store(),
    )


@lru_cache
def get_paypal_adapter() -> PayPalOrderAdapter:
    return PayPalOrderAdapter(get_payment_config(), get_session_guard(), get_payment_ledger())


@lru_cache
def get_stripe_adapter() -> StripeCheckoutAdapter:
    return StripeCheckoutAdapter(
        get_payment_config(),
        get_session_guard(),
        get_payment_ledger(),
        get_webhook_event_store(),
    )


def get_gateway_adapters() -> dict[PaymentMethod, GatewayAdapter]:
    return {
        PaymentMethod.MAYA_CHECKOUT: get_maya_adapter(),
        PaymentMethod.PAYPAL: get_paypal_adapter(),
        PaymentMethod.CARD: get_stripe_adapter(),
    }


@lru_cache
def get_orchestrator() -> PaymentOrchestrator:
    """Get cached PaymentOrchestrator instance.

    Returns:
        PaymentOrchestrator over every gateway adapter.
    """
    return PaymentOrchestrator(
        get_payment_config(),
        get_payment_validator(),
        get_session_guard(),
        get_gateway_adapters(),
        monitor=get_payment_monitor(),
    )


@lru_cache
def get_manual_payment_service() -> ManualPaymentService:
    return ManualPaymentService(
        get_dynamodb_service(),
        get_booking_store(),
        get_payment_validator(),
        get_payment_ledger(),
        monitor=get_payment_monitor(),
    )


def reset_services() -> None:
    """Clear all cached service instances.

    Call this in test fixtures to ensure clean state between tests.
    Also resets the underlying DynamoDB singleton.
    """
    from paycore.services.dynamodb import reset_dynamodb_service

    for provider in (
        get_payment_config,
        get_booking_store,
        get_session_guard,
        get_payment_monitor,
        get_notification_outbox,
        get_notification_worker,
        get_webhook_event_store,
        get_payment_validator,
        get_payment_ledger,
        get_maya_adapter,
        get_paypal_adapter,
        get_stripe_adapter,
        get_orchestrator,
        get_manual_payment_service,
    ):
        provider.cache_clear()

    reset_dynamodb_service()

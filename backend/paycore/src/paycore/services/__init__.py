"""Payment core services."""

from .bookings import BookingStore
from .duplicates import DuplicateDetector
from .dynamodb import DynamoDBService, get_dynamodb_service, reset_dynamodb_service
from .gateways import (
    GatewayAdapter,
    MayaWalletAdapter,
    PayPalOrderAdapter,
    StripeCheckoutAdapter,
    WebhookGatewayAdapter,
)
from .ledger import PaymentLedger
from .manual import ManualPaymentService
from .monitoring import PaymentMonitor
from .notifications import (
    LoggingNotificationSender,
    NotificationOutbox,
    NotificationSender,
    NotificationWorker,
)
from .orchestrator import PaymentOrchestrator
from .retry import RetryPolicy, RetryResult, execute_with_retry
from .session_guard import SessionGuard
from .validator import PaymentValidator
from .webhook_log import WebhookEventStore, compute_payload_hash

__all__ = [
    "DynamoDBService",
    "get_dynamodb_service",
    "reset_dynamodb_service",
    "BookingStore",
    "DuplicateDetector",
    "PaymentValidator",
    "SessionGuard",
    "PaymentLedger",
    "ManualPaymentService",
    "PaymentMonitor",
    "NotificationOutbox",
    "NotificationSender",
    "NotificationWorker",
    "LoggingNotificationSender",
    "PaymentOrchestrator",
    "RetryPolicy",
    "RetryResult",
    "execute_with_retry",
    "WebhookEventStore",
    "compute_payload_hash",
    "GatewayAdapter",
    "WebhookGatewayAdapter",
    "MayaWalletAdapter",
    "PayPalOrderAdapter",
    "StripeCheckoutAdapter",
]

"""Pytest configuration and fixtures for the booking payment backend tests.

This module provides reusable fixtures for testing:
- DynamoDB mocking with moto (all payment tables)
- A controllable clock
- Fully configured PaymentConfig
- Payment services wired to the mocked tables
- Booking factory
"""

import datetime as dt
import os
from decimal import Decimal
from typing import Any, Callable, Generator

import boto3
import pytest
from moto import mock_aws

# === Environment Setup ===

# Set environment variables for testing before imports
os.environ.setdefault("AWS_DEFAULT_REGION", "eu-west-1")
os.environ.setdefault("DYNAMODB_TABLE_PREFIX", "test-paycore")

if not os.environ.get("AWS_PROFILE") and not os.environ.get("AWS_ACCESS_KEY_ID"):
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")

from paycore.config import (  # noqa: E402
    BankSettings,
    ManualAccountSettings,
    MayaCheckoutSettings,
    PaymentConfig,
    PayPalSettings,
    StripeSettings,
)
from paycore.models import Booking, BookingStatus  # noqa: E402

TABLE_PREFIX = os.environ["DYNAMODB_TABLE_PREFIX"]

# Monday 10:00 UTC; every service under test reads time from FrozenClock
NOW = dt.datetime(2026, 3, 2, 10, 0, 0, tzinfo=dt.UTC)

CLIENT_ID = "client-001"
PROVIDER_ID = "provider-001"

STRIPE_WEBHOOK_SECRET = "whsec_test_secret123"
MAYA_WEBHOOK_SECRET = "maya_webhook_secret"


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: dt.datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> dt.datetime:
        return self.now

    def advance(self, **kwargs: float) -> dt.datetime:
        self.now += dt.timedelta(**kwargs)
        return self.now


# === DynamoDB Fixtures ===


@pytest.fixture(autouse=True)
def reset_dynamodb_singleton() -> Generator[None, None, None]:
    """Reset DynamoDB and API service singletons before and after each test.

    Tests using mock_aws get fresh service instances inside the mock
    context rather than reusing ones built by a previous test.
    """
    from api.dependencies import reset_services

    reset_services()
    yield
    reset_services()


@pytest.fixture
def aws_credentials() -> None:
    """Mocked AWS Credentials for moto."""
    if not os.environ.get("AWS_PROFILE"):
        os.environ["AWS_ACCESS_KEY_ID"] = "testing"
        os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
        os.environ["AWS_SECURITY_TOKEN"] = "testing"
        os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "eu-west-1"


@pytest.fixture
def dynamodb_client(aws_credentials: None) -> Generator[Any, None, None]:
    """Create a mocked DynamoDB client."""
    with mock_aws():
        client = boto3.client("dynamodb", region_name="eu-west-1")
        yield client


def _table(
    name: str,
    key: str,
    indexes: list[tuple[str, str, str | None]] | None = None,
) -> dict[str, Any]:
    attributes = {key}
    gsis = []
    for index_name, hash_key, range_key in indexes or []:
        schema = [{"AttributeName": hash_key, "KeyType": "HASH"}]
        attributes.add(hash_key)
        if range_key:
            schema.append({"AttributeName": range_key, "KeyType": "RANGE"})
            attributes.add(range_key)
        gsis.append(
            {
                "IndexName": index_name,
                "KeySchema": schema,
                "Projection": {"ProjectionType": "ALL"},
            }
        )

    table: dict[str, Any] = {
        "TableName": f"{TABLE_PREFIX}-{name}",
        "KeySchema": [{"AttributeName": key, "KeyType": "HASH"}],
        "AttributeDefinitions": [
            {"AttributeName": attribute, "AttributeType": "S"} for attribute in sorted(attributes)
        ],
        "BillingMode": "PAY_PER_REQUEST",
    }
    if gsis:
        table["GlobalSecondaryIndexes"] = gsis
    return table


@pytest.fixture
def create_tables(dynamodb_client: Any) -> None:
    """Create all payment tables for testing."""
    tables = [
        _table("bookings", "booking_id", [("status-index", "status", None)]),
        _table("payment-sessions", "booking_id"),
        _table(
            "transactions",
            "transaction_id",
            [("booking_id-created_at-index", "booking_id", "created_at")],
        ),
        _table(
            "payment-events",
            "event_id",
            [("event_type-timestamp-index", "event_type", "timestamp")],
        ),
        _table("payment-metrics", "date"),
        _table("payment-alerts", "alert_id"),
        _table(
            "payment-notifications",
            "message_id",
            [("status-created_at-index", "status", "created_at")],
        ),
        _table("webhook-events", "event_id"),
    ]
    for table in tables:
        dynamodb_client.create_table(**table)


# === Service Fixtures ===


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def payment_config() -> PaymentConfig:
    """Configuration with every payment method set up."""
    return PaymentConfig(
        environment="test",
        app_url="https://app.example.com",
        bank=BankSettings(
            account_name="Summit Services Inc",
            account_number="0012-3456-7890",
            bank_name="BPI",
        ),
        gcash=ManualAccountSettings(account_name="Summit Services", account_number="09171234567"),
        maya_wallet=ManualAccountSettings(
            account_name="Summit Services", account_number="09181234567"
        ),
        maya=MayaCheckoutSettings(
            public_key="pk-test-maya",
            secret_key="sk-test-maya",
            webhook_secret=MAYA_WEBHOOK_SECRET,
        ),
        paypal=PayPalSettings(client_id="paypal-client", client_secret="paypal-secret"),
        stripe=StripeSettings(
            secret_key="sk_test_abc123", webhook_secret=STRIPE_WEBHOOK_SECRET
        ),
    )


@pytest.fixture
def db(create_tables: None) -> Any:
    """DynamoDBService bound to the mocked tables."""
    from paycore.services.dynamodb import DynamoDBService

    return DynamoDBService(environment="test")


@pytest.fixture
def booking_store(db: Any) -> Any:
    from paycore.services.bookings import BookingStore

    return BookingStore(db)


@pytest.fixture
def session_guard(db: Any, payment_config: PaymentConfig, clock: FrozenClock) -> Any:
    from paycore.services.session_guard import SessionGuard

    return SessionGuard(db, payment_config, clock)


@pytest.fixture
def monitor(db: Any, clock: FrozenClock) -> Any:
    from paycore.services.monitoring import PaymentMonitor

    return PaymentMonitor(db, clock)


@pytest.fixture
def outbox(db: Any, clock: FrozenClock) -> Any:
    from paycore.services.notifications import NotificationOutbox

    return NotificationOutbox(db, clock)


@pytest.fixture
def webhook_store(db: Any, clock: FrozenClock) -> Any:
    from paycore.services.webhook_log import WebhookEventStore

    return WebhookEventStore(db, clock)


@pytest.fixture
def duplicates(db: Any, payment_config: PaymentConfig, clock: FrozenClock) -> Any:
    from paycore.services.duplicates import DuplicateDetector

    return DuplicateDetector(db, payment_config, clock)


@pytest.fixture
def validator(
    payment_config: PaymentConfig, booking_store: Any, duplicates: Any, clock: FrozenClock
) -> Any:
    from paycore.services.validator import PaymentValidator

    return PaymentValidator(payment_config, booking_store, duplicates, clock)


@pytest.fixture
def ledger(
    db: Any,
    booking_store: Any,
    session_guard: Any,
    monitor: Any,
    outbox: Any,
    clock: FrozenClock,
) -> Any:
    from paycore.services.ledger import PaymentLedger

    return PaymentLedger(db, booking_store, session_guard, monitor, outbox, clock)


@pytest.fixture
def make_booking(booking_store: Any, clock: FrozenClock) -> Callable[..., Booking]:
    """Factory that stores a booking created one hour ago by default."""

    def _make(
        booking_id: str = "BK-1001",
        *,
        status: BookingStatus = BookingStatus.PENDING_PAYMENT,
        price: Decimal = Decimal("1500.00"),
        client_id: str = CLIENT_ID,
        age: dt.timedelta = dt.timedelta(hours=1),
        **fields: Any,
    ) -> Booking:
        booking = Booking(
            booking_id=booking_id,
            client_id=client_id,
            provider_id=PROVIDER_ID,
            price=price,
            status=status,
            created_at=clock() - age,
            service_name="Deep cleaning",
            **fields,
        )
        booking_store.save_booking(booking)
        return booking

    return _make


# === Gateway Helpers ===


def checkout_request(booking_id: str = "BK-1001", **overrides: Any) -> Any:
    """CheckoutRequest for the default booking, as the orchestrator builds it."""
    from paycore.models import CheckoutRequest

    base = f"https://app.example.com/bookings/{booking_id}/payment"
    fields: dict[str, Any] = {
        "booking_id": booking_id,
        "user_id": CLIENT_ID,
        "amount": Decimal("1500.00"),
        "description": f"Booking {booking_id}",
        "customer_email": "client@example.com",
        "return_url": f"{base}/success?method=card",
        "cancel_url": f"{base}/cancel?method=card",
    }
    fields.update(overrides)
    return CheckoutRequest(**fields)


@pytest.fixture
def no_wait_policy() -> Any:
    """Gateway retry policy that never sleeps."""
    from paycore.services.retry import RetryPolicy

    return RetryPolicy(max_attempts=3, sleep=lambda _: None)


# === API Fixtures ===

# Everything but PayPal is configured for the API tests
API_ENV = {
    "ENVIRONMENT": "test",
    "APP_URL": "https://app.example.com",
    "BANK_ACCOUNT_NAME": "Summit Services Inc",
    "BANK_ACCOUNT_NUMBER": "0012-3456-7890",
    "BANK_NAME": "BPI",
    "GCASH_ACCOUNT_NAME": "Summit Services",
    "GCASH_ACCOUNT_NUMBER": "09171234567",
    "MAYA_ACCOUNT_NAME": "Summit Services",
    "MAYA_ACCOUNT_NUMBER": "09181234567",
    "MAYA_PUBLIC_KEY": "pk-test-maya",
    "MAYA_SECRET_KEY": "sk-test-maya",
    "MAYA_WEBHOOK_SECRET": MAYA_WEBHOOK_SECRET,
    "STRIPE_SECRET_KEY": "sk_test_abc123",
    "STRIPE_WEBHOOK_SECRET": STRIPE_WEBHOOK_SECRET,
}


@pytest.fixture
def api_client(create_tables: None, monkeypatch: pytest.MonkeyPatch) -> Generator[Any, None, None]:
    """TestClient over the real app, services wired to the mocked tables."""
    from fastapi.testclient import TestClient

    from api.dependencies import reset_services
    from api.main import app

    for name, value in API_ENV.items():
        monkeypatch.setenv(name, value)
    for name in ("PAYPAL_CLIENT_ID", "PAYPAL_CLIENT_SECRET"):
        monkeypatch.delenv(name, raising=False)
    reset_services()

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def seed_booking(booking_store: Any) -> Callable[..., Booking]:
    """Store a booking created an hour before the real current time.

    The API runs on the wall clock, unlike services built with ``clock``.
    """

    def _seed(
        booking_id: str = "BK-1001",
        *,
        status: BookingStatus = BookingStatus.PENDING_PAYMENT,
        price: Decimal = Decimal("1500.00"),
    ) -> Booking:
        booking = Booking(
            booking_id=booking_id,
            client_id=CLIENT_ID,
            provider_id=PROVIDER_ID,
            price=price,
            status=status,
            created_at=dt.datetime.now(dt.UTC).replace(microsecond=0) - dt.timedelta(hours=1),
            service_name="Deep cleaning",
        )
        booking_store.save_booking(booking)
        return booking

    return _seed


def client_headers(user_id: str = CLIENT_ID) -> dict[str, str]:
    return {"x-user-id": user_id}


def admin_headers(admin_id: str = "admin-007") -> dict[str, str]:
    return {"x-user-id": admin_id, "x-user-role": "admin"}

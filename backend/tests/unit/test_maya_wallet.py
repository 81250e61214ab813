"""Unit tests for the Maya Checkout adapter.

Maya's REST API is replaced by an httpx.MockTransport; bookings, sessions
and the ledger run against moto.
"""

import base64
import hashlib
import hmac
import json
from decimal import Decimal
from typing import Any, Callable

import httpx
import pytest

from conftest import MAYA_WEBHOOK_SECRET, checkout_request
from paycore.config import MayaCheckoutSettings, PaymentConfig
from paycore.models import (
    BookingStatus,
    ErrorCode,
    GatewayState,
    PaymentError,
    ProcessingOutcome,
    SessionStatus,
    TransactionStatus,
    TransactionType,
)
from paycore.services.gateways import MayaWalletAdapter, map_maya_status
from paycore.services.retry import RetryPolicy

CHECKOUT_ID = "chk_7f3a2b"
CHECKOUT_URL = f"https://payments-web-sandbox.paymaya.com/v2/checkout?id={CHECKOUT_ID}"

Handler = Callable[[httpx.Request], httpx.Response]


class MayaApi:
    """Records requests and answers with queued responses per route."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.routes: dict[tuple[str, str], list[httpx.Response]] = {}

    def queue(self, method: str, path: str, *responses: httpx.Response) -> None:
        self.routes.setdefault((method, path), []).extend(responses)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queued = self.routes.get((request.method, request.url.path))
        if not queued:
            return httpx.Response(404, json={"code": "NOT_FOUND"})
        return queued.pop(0) if len(queued) > 1 else queued[0]


@pytest.fixture
def maya_api() -> MayaApi:
    return MayaApi()


@pytest.fixture
def make_adapter(
    session_guard, ledger, webhook_store, no_wait_policy, maya_api: MayaApi
) -> Callable[..., MayaWalletAdapter]:
    def _make(config: PaymentConfig) -> MayaWalletAdapter:
        return MayaWalletAdapter(
            config,
            session_guard,
            ledger,
            webhook_store,
            call_policy=no_wait_policy,
            status_policy=RetryPolicy(max_attempts=2, sleep=lambda _: None),
            transport=httpx.MockTransport(maya_api),
        )

    return _make


@pytest.fixture
def adapter(make_adapter, payment_config) -> MayaWalletAdapter:
    return make_adapter(payment_config)


def checkout_status(status: str, **extra: Any) -> httpx.Response:
    body = {
        "id": CHECKOUT_ID,
        "status": status,
        "requestReferenceNumber": "BK-1001",
        "metadata": {"bookingId": "BK-1001", "type": "booking_payment"},
        "totalAmount": {"value": 1500, "currency": "PHP"},
        **extra,
    }
    return httpx.Response(200, json=body)


def sign(payload: bytes, secret: str = MAYA_WEBHOOK_SECRET) -> str:
    return hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()


def webhook_payload(
    status: str, booking_id: str = "BK-1001", checkout_id: str = CHECKOUT_ID
) -> bytes:
    return json.dumps(
        {
            "id": checkout_id,
            "paymentStatus": status,
            "requestReferenceNumber": booking_id,
            "totalAmount": {"value": 1500, "currency": "PHP"},
            "receiptNumber": "RCPT-001",
        }
    ).encode()


class TestStatusMapping:
    @pytest.mark.parametrize(
        ("status", "state"),
        [
            ("PAYMENT_SUCCESS", GatewayState.CAPTURED),
            ("PAID", GatewayState.CAPTURED),
            ("success", GatewayState.CAPTURED),
            ("PAYMENT_FAILED", GatewayState.DECLINED),
            ("PAYMENT_EXPIRED", GatewayState.DECLINED),
            ("PAYMENT_CANCELLED", GatewayState.DECLINED),
            ("EXPIRED", GatewayState.DECLINED),
            ("AUTHORIZED", GatewayState.DIRECT_AUTHORIZED),
            ("PENDING_PAYMENT", GatewayState.REDIRECT_PENDING),
            ("", GatewayState.REDIRECT_PENDING),
        ],
    )
    def test_map_maya_status(self, status: str, state: GatewayState) -> None:
        assert map_maya_status(status) == state


class TestCreatePayment:
    def test_creates_checkout(self, adapter, maya_api: MayaApi, session_guard) -> None:
        maya_api.queue(
            "POST",
            "/checkout/v1/checkouts",
            httpx.Response(200, json={"checkoutId": CHECKOUT_ID, "redirectUrl": CHECKOUT_URL}),
        )

        result = adapter.create_payment(checkout_request())

        assert result.success is True
        assert result.session_ref == CHECKOUT_ID
        assert result.redirect_url == CHECKOUT_URL
        assert result.state == GatewayState.REDIRECT_PENDING

        [request] = maya_api.requests
        assert request.url.host == "pg-sandbox.maya.ph"
        expected_auth = base64.b64encode(b"pk-test-maya:").decode()
        assert request.headers["Authorization"] == f"Basic {expected_auth}"
        body = json.loads(request.content)
        assert body["requestReferenceNumber"] == "BK-1001"
        assert body["totalAmount"] == {"value": 1500.0, "currency": "PHP"}
        assert body["redirectUrl"]["success"] == (
            "https://app.example.com/bookings/BK-1001/payment/success?method=maya"
        )
        assert body["buyer"]["contact"]["email"] == "client@example.com"

        session = session_guard.get_session("BK-1001")
        assert session.gateway == "maya_checkout"
        assert session.gateway_reference == CHECKOUT_ID
        assert session.redirect_url == CHECKOUT_URL

    def test_retries_server_errors(self, adapter, maya_api: MayaApi) -> None:
        maya_api.queue(
            "POST",
            "/checkout/v1/checkouts",
            httpx.Response(503, json={"code": "SERVICE_UNAVAILABLE"}),
            httpx.Response(200, json={"checkoutId": CHECKOUT_ID, "redirectUrl": CHECKOUT_URL}),
        )

        result = adapter.create_payment(checkout_request())

        assert result.success is True
        assert len(maya_api.requests) == 2

    def test_rejected_request_fails_session(self, adapter, maya_api: MayaApi, session_guard) -> None:
        maya_api.queue(
            "POST",
            "/checkout/v1/checkouts",
            httpx.Response(400, json={"code": "PY0004", "message": "Invalid amount"}),
        )

        result = adapter.create_payment(checkout_request())

        assert result.success is False
        assert result.state == GatewayState.DECLINED
        assert result.error == "Failed to create payment. Please try again."
        assert len(maya_api.requests) == 1
        assert session_guard.get_session("BK-1001").status == SessionStatus.FAILED

    def test_not_configured(self, make_adapter, maya_api: MayaApi) -> None:
        adapter = make_adapter(PaymentConfig())

        with pytest.raises(PaymentError) as exc_info:
            adapter.create_payment(checkout_request())

        assert exc_info.value.code == ErrorCode.GATEWAY_NOT_CONFIGURED
        assert maya_api.requests == []

    def test_active_session_blocks_second_checkout(self, adapter, maya_api: MayaApi) -> None:
        maya_api.queue(
            "POST",
            "/checkout/v1/checkouts",
            httpx.Response(200, json={"checkoutId": CHECKOUT_ID, "redirectUrl": CHECKOUT_URL}),
        )
        adapter.create_payment(checkout_request())

        with pytest.raises(PaymentError) as exc_info:
            adapter.create_payment(checkout_request())

        assert exc_info.value.code == ErrorCode.SESSION_ACTIVE
        assert len(maya_api.requests) == 1


class TestHandleResult:
    def test_success_settles_booking(
        self, adapter, maya_api: MayaApi, make_booking, booking_store, ledger
    ) -> None:
        make_booking()
        maya_api.queue(
            "GET",
            f"/checkout/v1/checkouts/{CHECKOUT_ID}",
            checkout_status("PAYMENT_SUCCESS", paymentId="pay_991"),
        )

        result = adapter.handle_result("BK-1001", CHECKOUT_ID)

        assert result.outcome == ProcessingOutcome.CAPTURED
        booking = booking_store.get_booking("BK-1001")
        assert booking.status == BookingStatus.UPCOMING
        assert booking.gateway_reference == "pay_991"
        assert booking.payment_verified_by == "maya_checkout"
        assert ledger.get_booking_payment("BK-1001").amount == Decimal("1500")

        expected_auth = base64.b64encode(b"sk-test-maya:").decode()
        assert maya_api.requests[0].headers["Authorization"] == f"Basic {expected_auth}"

    def test_expired_checkout_rejects_booking(
        self, adapter, maya_api: MayaApi, make_booking, booking_store
    ) -> None:
        make_booking()
        maya_api.queue(
            "GET", f"/checkout/v1/checkouts/{CHECKOUT_ID}", checkout_status("PAYMENT_EXPIRED")
        )

        result = adapter.handle_result("BK-1001", CHECKOUT_ID)

        assert result.outcome == ProcessingOutcome.DECLINED
        booking = booking_store.get_booking("BK-1001")
        assert booking.status == BookingStatus.PAYMENT_REJECTED
        assert booking.payment_rejection_reason == "Maya payment payment_expired"

    def test_pending_checkout_changes_nothing(
        self, adapter, maya_api: MayaApi, make_booking, booking_store
    ) -> None:
        make_booking()
        maya_api.queue(
            "GET", f"/checkout/v1/checkouts/{CHECKOUT_ID}", checkout_status("PENDING_PAYMENT")
        )

        result = adapter.handle_result("BK-1001", CHECKOUT_ID)

        assert result.outcome == ProcessingOutcome.PENDING
        assert booking_store.get_booking("BK-1001").status == BookingStatus.PENDING_PAYMENT

    def test_checkout_of_another_booking(
        self, adapter, maya_api: MayaApi, make_booking, booking_store
    ) -> None:
        make_booking("BK-2002")
        maya_api.queue(
            "GET", f"/checkout/v1/checkouts/{CHECKOUT_ID}", checkout_status("PAYMENT_SUCCESS")
        )

        result = adapter.handle_result("BK-2002", CHECKOUT_ID)

        assert result.outcome == ProcessingOutcome.ERROR
        assert booking_store.get_booking("BK-2002").status == BookingStatus.PENDING_PAYMENT

    def test_reference_must_match_session(
        self, adapter, maya_api: MayaApi, make_booking, session_guard
    ) -> None:
        make_booking()
        session_guard.create_session("BK-1001", "client-001", "maya_checkout", Decimal("1500"))
        session_guard.attach_gateway_reference("BK-1001", CHECKOUT_ID)

        result = adapter.handle_result("BK-1001", "chk_forged")

        assert result.outcome == ProcessingOutcome.ERROR
        assert maya_api.requests == []

    def test_status_lookup_failure_raises(self, adapter, maya_api: MayaApi, make_booking) -> None:
        make_booking()
        maya_api.queue(
            "GET",
            f"/checkout/v1/checkouts/{CHECKOUT_ID}",
            httpx.Response(500, json={"code": "INTERNAL_SERVER_ERROR"}),
        )

        with pytest.raises(Exception, match="HTTP 500"):
            adapter.handle_result("BK-1001", CHECKOUT_ID)

        assert len(maya_api.requests) == 2


class TestWebhooks:
    def test_success_webhook_settles_booking(
        self, adapter, make_booking, booking_store, webhook_store
    ) -> None:
        make_booking()
        payload = webhook_payload("PAYMENT_SUCCESS")

        result = adapter.process_webhook_event(payload, sign(payload))

        assert result.outcome == ProcessingOutcome.CAPTURED
        assert result.event_id == f"{CHECKOUT_ID}_PAYMENT_SUCCESS"
        booking = booking_store.get_booking("BK-1001")
        assert booking.status == BookingStatus.UPCOMING
        assert booking.gateway_reference == "RCPT-001"

        entry = webhook_store.get(f"{CHECKOUT_ID}_PAYMENT_SUCCESS")
        assert entry.processing_result == "success"
        assert entry.gateway == "maya_checkout"
        assert entry.booking_id == "BK-1001"

    def test_signature_prefix_is_tolerated(self, adapter, make_booking) -> None:
        make_booking()
        payload = webhook_payload("PAYMENT_SUCCESS")

        result = adapter.process_webhook_event(payload, f"sha256={sign(payload)}")

        assert result.outcome == ProcessingOutcome.CAPTURED

    def test_duplicate_delivery(self, adapter, make_booking, ledger, db) -> None:
        make_booking()
        payload = webhook_payload("PAYMENT_SUCCESS")
        adapter.process_webhook_event(payload, sign(payload))

        result = adapter.process_webhook_event(payload, sign(payload))

        assert result.outcome == ProcessingOutcome.DUPLICATE
        assert ledger.get_booking_payment("BK-1001") is not None

    def test_failed_webhook(self, adapter, make_booking, booking_store) -> None:
        make_booking()
        payload = webhook_payload("PAYMENT_FAILED")

        result = adapter.process_webhook_event(payload, sign(payload))

        assert result.outcome == ProcessingOutcome.DECLINED
        assert booking_store.get_booking("BK-1001").status == BookingStatus.PAYMENT_REJECTED

    def test_invalid_signature_touches_nothing(
        self, adapter, make_booking, booking_store, webhook_store
    ) -> None:
        make_booking()
        payload = webhook_payload("PAYMENT_SUCCESS")

        with pytest.raises(PaymentError) as exc_info:
            adapter.process_webhook_event(payload, sign(payload, "wrong-secret"))

        assert exc_info.value.code == ErrorCode.INVALID_WEBHOOK_SIGNATURE
        assert booking_store.get_booking("BK-1001").status == BookingStatus.PENDING_PAYMENT
        assert webhook_store.get(f"{CHECKOUT_ID}_PAYMENT_SUCCESS") is None

    def test_tampered_payload_is_rejected(self, adapter, make_booking) -> None:
        make_booking()
        signature = sign(webhook_payload("PAYMENT_FAILED"))

        with pytest.raises(PaymentError):
            adapter.process_webhook_event(webhook_payload("PAYMENT_SUCCESS"), signature)

    def test_non_terminal_status_is_skipped(self, adapter, make_booking, webhook_store) -> None:
        make_booking()
        payload = webhook_payload("PAYMENT_PROCESSING")

        result = adapter.process_webhook_event(payload, sign(payload))

        assert result.outcome == ProcessingOutcome.SKIPPED
        assert result.booking_id == "BK-1001"
        assert webhook_store.get(f"{CHECKOUT_ID}_PAYMENT_PROCESSING").processing_result == (
            "skipped"
        )

    def test_processing_error_allows_redelivery(
        self, adapter, webhook_store, make_booking, booking_store
    ) -> None:
        payload = webhook_payload("PAYMENT_SUCCESS")

        with pytest.raises(PaymentError) as exc_info:
            adapter.process_webhook_event(payload, sign(payload))

        assert exc_info.value.code == ErrorCode.BOOKING_NOT_FOUND
        assert webhook_store.get(f"{CHECKOUT_ID}_PAYMENT_SUCCESS").processing_result == "error"

        make_booking()
        result = adapter.process_webhook_event(payload, sign(payload))

        assert result.outcome == ProcessingOutcome.CAPTURED
        assert booking_store.get_booking("BK-1001").status == BookingStatus.UPCOMING

    def test_secret_key_signs_when_no_webhook_secret(self, make_adapter, make_booking) -> None:
        make_booking()
        config = PaymentConfig(
            maya=MayaCheckoutSettings(public_key="pk-test-maya", secret_key="sk-test-maya")
        )
        adapter = make_adapter(config)
        payload = webhook_payload("PAYMENT_SUCCESS")

        result = adapter.process_webhook_event(payload, sign(payload, "sk-test-maya"))

        assert result.outcome == ProcessingOutcome.CAPTURED


class TestReplacedCheckout:
    """A booking whose first checkout expired and was replaced by a second."""

    @pytest.fixture
    def replaced(self, adapter, maya_api: MayaApi, make_booking, clock) -> MayaWalletAdapter:
        make_booking()
        maya_api.queue(
            "POST",
            "/checkout/v1/checkouts",
            httpx.Response(200, json={"checkoutId": "chk_old", "redirectUrl": CHECKOUT_URL}),
            httpx.Response(200, json={"checkoutId": "chk_new", "redirectUrl": CHECKOUT_URL}),
        )
        adapter.create_payment(checkout_request())
        clock.advance(minutes=16)
        adapter.create_payment(checkout_request())
        return adapter

    def test_expiry_of_old_checkout_is_skipped(
        self, replaced, booking_store, session_guard, webhook_store
    ) -> None:
        expired = webhook_payload("PAYMENT_EXPIRED", checkout_id="chk_old")

        result = replaced.process_webhook_event(expired, sign(expired))

        assert result.outcome == ProcessingOutcome.SKIPPED
        assert result.event_id == "chk_old_PAYMENT_EXPIRED"
        assert booking_store.get_booking("BK-1001").status == BookingStatus.PENDING_PAYMENT
        session = session_guard.get_session("BK-1001")
        assert session.gateway_reference == "chk_new"
        assert session.status == SessionStatus.PENDING
        assert webhook_store.get("chk_old_PAYMENT_EXPIRED").processing_result == "skipped"

        paid = webhook_payload("PAYMENT_SUCCESS", checkout_id="chk_new")
        settled = replaced.process_webhook_event(paid, sign(paid))

        assert settled.outcome == ProcessingOutcome.CAPTURED
        assert booking_store.get_booking("BK-1001").status == BookingStatus.UPCOMING
        assert session_guard.get_session("BK-1001").status == SessionStatus.COMPLETED

    def test_decline_of_current_checkout_still_rejects(self, replaced, booking_store) -> None:
        failed = webhook_payload("PAYMENT_FAILED", checkout_id="chk_new")

        result = replaced.process_webhook_event(failed, sign(failed))

        assert result.outcome == ProcessingOutcome.DECLINED
        assert booking_store.get_booking("BK-1001").status == BookingStatus.PAYMENT_REJECTED

    def test_payment_through_old_checkout_settles_booking(
        self, replaced, booking_store, session_guard
    ) -> None:
        paid = webhook_payload("PAYMENT_SUCCESS", checkout_id="chk_old")

        result = replaced.process_webhook_event(paid, sign(paid))

        assert result.outcome == ProcessingOutcome.CAPTURED
        assert booking_store.get_booking("BK-1001").status == BookingStatus.UPCOMING

    def test_second_capture_is_queued_for_refund(self, replaced, ledger) -> None:
        first = webhook_payload("PAYMENT_SUCCESS", checkout_id="chk_new")
        replaced.process_webhook_event(first, sign(first))

        second = webhook_payload("PAYMENT_SUCCESS", checkout_id="chk_old")
        result = replaced.process_webhook_event(second, sign(second))

        assert result.outcome == ProcessingOutcome.ALREADY_PROCESSED
        refund = ledger.get_transaction("RFD-BK-1001-chk_old")
        assert refund.status == TransactionStatus.PENDING
        assert refund.type == TransactionType.REFUND
        assert ledger.get_booking_payment("BK-1001").checkout_reference == "chk_new"

"""Contract tests for error and webhook response bodies.

Clients and gateways rely on these shapes:
- Every error is {success, error_code, message, recovery, details}
- Each ErrorCode maps to one HTTP status
- Gateway and ledger failures never leak provider details
- Webhook replies are {received, event_id, processing_result, message}
"""

import hashlib
import hmac
from unittest.mock import MagicMock

import pytest
from starlette.status import (
    HTTP_200_OK,
    HTTP_400_BAD_REQUEST,
    HTTP_401_UNAUTHORIZED,
    HTTP_402_PAYMENT_REQUIRED,
    HTTP_403_FORBIDDEN,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
    HTTP_500_INTERNAL_SERVER_ERROR,
    HTTP_502_BAD_GATEWAY,
    HTTP_503_SERVICE_UNAVAILABLE,
)

from api.exceptions import ERROR_CODE_TO_HTTP_STATUS, get_http_status_for_error
from conftest import MAYA_WEBHOOK_SECRET, client_headers
from paycore.models import (
    ERROR_MESSAGES,
    ERROR_RECOVERY,
    ErrorCode,
    GatewayError,
    PaymentError,
    PaymentIntegrityError,
)

ERROR_BODY_KEYS = {"success", "error_code", "message", "recovery", "details"}
WEBHOOK_BODY_KEYS = {"received", "event_id", "processing_result", "message"}


@pytest.fixture
def orchestrator(api_client) -> MagicMock:
    from api.dependencies import get_orchestrator
    from api.main import app

    mock = MagicMock()
    app.dependency_overrides[get_orchestrator] = lambda: mock
    return mock


class TestErrorCodes:
    @pytest.mark.parametrize("code", list(ErrorCode))
    def test_every_code_has_message_and_recovery(self, code: ErrorCode) -> None:
        assert ERROR_MESSAGES[code]
        assert ERROR_RECOVERY[code]

    @pytest.mark.parametrize(
        ("code", "status"),
        [
            (ErrorCode.VALIDATION_FAILED, HTTP_400_BAD_REQUEST),
            (ErrorCode.UNKNOWN_PAYMENT_METHOD, HTTP_400_BAD_REQUEST),
            (ErrorCode.INVALID_WEBHOOK_SIGNATURE, HTTP_400_BAD_REQUEST),
            (ErrorCode.AUTH_REQUIRED, HTTP_401_UNAUTHORIZED),
            (ErrorCode.UNAUTHORIZED, HTTP_403_FORBIDDEN),
            (ErrorCode.BOOKING_NOT_FOUND, HTTP_404_NOT_FOUND),
            (ErrorCode.SESSION_NOT_FOUND, HTTP_404_NOT_FOUND),
            (ErrorCode.BOOKING_NOT_PAYABLE, HTTP_409_CONFLICT),
            (ErrorCode.SESSION_ACTIVE, HTTP_409_CONFLICT),
            (ErrorCode.SESSION_INVALID, HTTP_409_CONFLICT),
            (ErrorCode.PAYMENT_FAILED, HTTP_402_PAYMENT_REQUIRED),
            (ErrorCode.GATEWAY_ERROR, HTTP_502_BAD_GATEWAY),
            (ErrorCode.GATEWAY_NOT_CONFIGURED, HTTP_503_SERVICE_UNAVAILABLE),
            (ErrorCode.LEDGER_INTEGRITY, HTTP_500_INTERNAL_SERVER_ERROR),
        ],
    )
    def test_http_status(self, code: ErrorCode, status: int) -> None:
        assert get_http_status_for_error(code) == status

    def test_every_code_is_mapped(self) -> None:
        assert set(ERROR_CODE_TO_HTTP_STATUS) == set(ErrorCode)


class TestErrorBody:
    def test_payment_error_shape(self, api_client, orchestrator) -> None:
        orchestrator.complete_checkout.side_effect = PaymentError(
            ErrorCode.SESSION_INVALID, message="Payment session has expired"
        )

        response = api_client.post("/api/payments/BK-1001/complete", headers=client_headers())

        assert response.status_code == HTTP_409_CONFLICT
        body = response.json()
        assert set(body) == ERROR_BODY_KEYS
        assert body["success"] is False
        assert body["error_code"] == "ERR_SESSION_003"
        assert body["message"] == "Payment session has expired"
        assert body["recovery"] == ERROR_RECOVERY[ErrorCode.SESSION_INVALID]

    def test_gateway_error_hides_provider_details(self, api_client, orchestrator) -> None:
        orchestrator.complete_checkout.side_effect = GatewayError(
            "No such checkout_session: 'cs_test_leak'",
            gateway="stripe",
            provider_error_code="resource_missing",
            status_code=404,
        )

        response = api_client.post("/api/payments/BK-1001/complete", headers=client_headers())

        assert response.status_code == HTTP_502_BAD_GATEWAY
        body = response.json()
        assert set(body) == ERROR_BODY_KEYS
        assert body["error_code"] == ErrorCode.GATEWAY_ERROR.value
        assert body["message"] == ERROR_MESSAGES[ErrorCode.GATEWAY_ERROR]
        assert "cs_test_leak" not in response.text

    def test_integrity_error(self, api_client, orchestrator) -> None:
        orchestrator.complete_checkout.side_effect = PaymentIntegrityError(
            "Payment captured for booking BK-1001 in status Payment Rejected",
            booking_id="BK-1001",
        )

        response = api_client.post("/api/payments/BK-1001/complete", headers=client_headers())

        assert response.status_code == HTTP_500_INTERNAL_SERVER_ERROR
        body = response.json()
        assert body["error_code"] == ErrorCode.LEDGER_INTEGRITY.value
        assert body["details"] == {"booking_id": "BK-1001"}
        assert "Payment Rejected" not in body["message"]


class TestWebhookBody:
    def test_skipped_event_shape(self, api_client) -> None:
        payload = b'{"id": "chk_300", "paymentStatus": "AUTH_SUCCESS"}'
        signature = hmac.new(MAYA_WEBHOOK_SECRET.encode(), payload, hashlib.sha256).hexdigest()

        response = api_client.post(
            "/api/webhooks/maya", content=payload, headers={"x-maya-signature": signature}
        )

        assert response.status_code == HTTP_200_OK
        body = response.json()
        assert set(body) == WEBHOOK_BODY_KEYS
        assert body["received"] is True
        assert body["processing_result"] == "skipped"

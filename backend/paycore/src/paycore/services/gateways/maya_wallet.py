"""Maya Checkout adapter (redirect-wallet flow).

The customer is redirected to a Maya-hosted checkout page. Maya reports the
outcome by redirecting back and by posting a webhook signed with
HMAC-SHA256; the checkout can also be polled by its ID.
"""

import base64
import hashlib
import hmac
import json
import logging
from typing import Any

import httpx

from paycore.config import MayaCheckoutSettings
from paycore.models import (
    CheckoutRequest,
    CheckoutResult,
    GatewayError,
    GatewayState,
    GatewayStatus,
    PaymentMethod,
    PaymentSession,
    WebhookEvent,
)
from paycore.utils.money import to_decimal

from .base import WebhookGatewayAdapter
from .http import build_client, send_json

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="

# Checkout statuses (API) and paymentStatus values (webhooks)
CAPTURED_STATUSES = {"PAYMENT_SUCCESS", "PAID", "SUCCESS", "COMPLETED"}
DECLINED_STATUSES = {
    "PAYMENT_FAILED",
    "PAYMENT_EXPIRED",
    "PAYMENT_CANCELLED",
    "FAILED",
    "EXPIRED",
    "CANCELLED",
    "VOIDED",
}
AUTHORIZED_STATUSES = {"AUTHORIZED", "PAYMENT_AUTHORIZED"}


def map_maya_status(status: str) -> GatewayState:
    """Translate a Maya checkout or payment status."""
    normalized = status.upper()
    if normalized in CAPTURED_STATUSES:
        return GatewayState.CAPTURED
    if normalized in DECLINED_STATUSES:
        return GatewayState.DECLINED
    if normalized in AUTHORIZED_STATUSES:
        return GatewayState.DIRECT_AUTHORIZED
    return GatewayState.REDIRECT_PENDING


class MayaWalletAdapter(WebhookGatewayAdapter):
    name = "maya_checkout"
    payment_method = PaymentMethod.MAYA_CHECKOUT

    def __init__(self, *args: Any, transport: httpx.BaseTransport | None = None, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.client = build_client(self.config.policy.gateway_timeout, transport)

    @property
    def settings(self) -> MayaCheckoutSettings:
        return self.config.maya

    def is_configured(self) -> bool:
        return self.config.validate_maya_config()

    def _headers(self, key: str) -> dict[str, str]:
        token = base64.b64encode(f"{key}:".encode()).decode()
        return {"Authorization": f"Basic {token}", "Content-Type": "application/json"}

    def _redirect_urls(self, booking_id: str) -> dict[str, str]:
        base = f"{self.config.app_url}/bookings/{booking_id}/payment"
        return {
            outcome: f"{base}/{outcome}?method=maya"
            for outcome in ("success", "failure", "cancel")
        }

    def _create_checkout(self, request: CheckoutRequest, session: PaymentSession) -> CheckoutResult:
        amount = {"value": float(request.amount), "currency": request.currency}
        body: dict[str, Any] = {
            "totalAmount": amount,
            "items": [
                {
                    "name": request.description,
                    "quantity": 1,
                    "code": request.booking_id,
                    "amount": amount,
                    "totalAmount": amount,
                }
            ],
            "redirectUrl": self._redirect_urls(request.booking_id),
            "requestReferenceNumber": request.booking_id,
            "metadata": {"bookingId": request.booking_id, "type": "booking_payment"},
        }
        if request.customer_email:
            body["buyer"] = {"contact": {"email": request.customer_email}}

        data = send_json(
            self.client,
            "POST",
            f"{self.settings.base_url}/checkout/v1/checkouts",
            gateway=self.name,
            headers=self._headers(self.settings.public_key),
            json=body,
        )
        checkout_id = data.get("checkoutId")
        redirect_url = data.get("redirectUrl")
        if not checkout_id or not redirect_url:
            raise GatewayError("Maya response missing checkoutId or redirectUrl", gateway=self.name)

        return CheckoutResult(
            success=True,
            session_ref=checkout_id,
            redirect_url=redirect_url,
            state=GatewayState.REDIRECT_PENDING,
        )

    def fetch_status(self, provider_ref: str) -> GatewayStatus:
        data = send_json(
            self.client,
            "GET",
            f"{self.settings.base_url}/checkout/v1/checkouts/{provider_ref}",
            gateway=self.name,
            headers=self._headers(self.settings.secret_key),
        )
        status = str(data.get("status") or data.get("paymentStatus") or "")
        return self._status(provider_ref, status, data)

    def _status(self, checkout_id: str, status: str, data: dict[str, Any]) -> GatewayStatus:
        state = map_maya_status(status)
        metadata = data.get("metadata") or {}
        total = data.get("totalAmount") or {}
        amount = total.get("value") if isinstance(total, dict) else None
        return GatewayStatus(
            state=state,
            provider_ref=checkout_id,
            booking_id=metadata.get("bookingId") or data.get("requestReferenceNumber"),
            amount=to_decimal(amount) if amount is not None else None,
            provider_status=status,
            capture_ref=data.get("paymentId") or data.get("receiptNumber"),
            failure_reason=(
                f"Maya payment {status.lower()}" if state == GatewayState.DECLINED else None
            ),
        )

    # Webhooks

    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:
        secret = self.settings.webhook_secret or self.settings.secret_key
        if not secret:
            logger.error("Maya webhook secret is not configured")
            return False

        expected = hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()
        received = signature.removeprefix(SIGNATURE_PREFIX)
        return hmac.compare_digest(expected, received)

    def parse_webhook_event(self, payload: bytes) -> WebhookEvent:
        data = json.loads(payload)
        checkout_id = str(data.get("id") or data.get("checkoutId") or "")
        payment_status = str(data.get("paymentStatus") or data.get("status") or "")
        parsed = self._status(checkout_id, payment_status, data)

        return WebhookEvent(
            event_id=f"{checkout_id}_{payment_status}",
            event_type=payment_status or "UNKNOWN",
            booking_id=parsed.booking_id,
            status=parsed if checkout_id and parsed.state.is_terminal else None,
        )

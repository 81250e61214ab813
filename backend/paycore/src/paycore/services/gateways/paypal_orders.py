"""PayPal Orders v2 adapter (order-capture flow).

An order is created with intent CAPTURE and the customer approves it on
PayPal. When they come back, ``fetch_status`` captures the approved order;
the capture response is the authoritative outcome.
"""

import logging
import time
from typing import Any

import httpx

from paycore.config import PayPalSettings
from paycore.models import (
    CheckoutRequest,
    CheckoutResult,
    GatewayError,
    GatewayState,
    GatewayStatus,
    PaymentMethod,
    PaymentSession,
)
from paycore.utils.money import to_decimal

from .base import GatewayAdapter, idempotency_key
from .http import build_client, send_json

logger = logging.getLogger(__name__)

REFERENCE_PREFIX = "booking_"
TOKEN_EXPIRY_MARGIN = 60.0

DECLINED_ORDER_STATUSES = {"VOIDED", "DECLINED", "FAILED"}
DECLINE_ISSUES = {"INSTRUMENT_DECLINED", "TRANSACTION_REFUSED", "PAYER_CANNOT_PAY"}
ALREADY_CAPTURED_ISSUE = "ORDER_ALREADY_CAPTURED"
NOT_APPROVED_ISSUE = "ORDER_NOT_APPROVED"


class PayPalOrderAdapter(GatewayAdapter):
    name = "paypal"
    payment_method = PaymentMethod.PAYPAL

    def __init__(self, *args: Any, transport: httpx.BaseTransport | None = None, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.client = build_client(self.config.policy.gateway_timeout, transport)
        self._token: str | None = None
        self._token_expires_at = 0.0

    @property
    def settings(self) -> PayPalSettings:
        return self.config.paypal

    def is_configured(self) -> bool:
        return self.config.validate_paypal_config()

    def _access_token(self) -> str:
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token

        data = send_json(
            self.client,
            "POST",
            f"{self.settings.base_url}/v1/oauth2/token",
            gateway=self.name,
            auth=(self.settings.client_id, self.settings.client_secret),
            data={"grant_type": "client_credentials"},
        )
        token = data.get("access_token")
        if not token:
            raise GatewayError("PayPal token response missing access_token", gateway=self.name)

        self._token = token
        self._token_expires_at = (
            time.monotonic() + float(data.get("expires_in", 0)) - TOKEN_EXPIRY_MARGIN
        )
        return token

    def _headers(self, **extra: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._access_token()}",
            "Content-Type": "application/json",
            **extra,
        }

    def _create_checkout(self, request: CheckoutRequest, session: PaymentSession) -> CheckoutResult:
        body = {
            "intent": "CAPTURE",
            "purchase_units": [
                {
                    "reference_id": f"{REFERENCE_PREFIX}{request.booking_id}",
                    "custom_id": request.booking_id,
                    "description": request.description,
                    "amount": {
                        "currency_code": request.currency,
                        "value": f"{request.amount:.2f}",
                    },
                }
            ],
            "application_context": {
                "return_url": request.return_url,
                "cancel_url": request.cancel_url,
                "user_action": "PAY_NOW",
                "shipping_preference": "NO_SHIPPING",
            },
        }
        data = send_json(
            self.client,
            "POST",
            f"{self.settings.base_url}/v2/checkout/orders",
            gateway=self.name,
            headers=self._headers(
                **{"PayPal-Request-Id": f"order_{idempotency_key(session)}"}
            ),
            json=body,
        )

        order_id = data.get("id")
        approve_url = next(
            (
                link["href"]
                for link in data.get("links", [])
                if link.get("rel") in ("approve", "payer-action")
            ),
            None,
        )
        if not order_id or not approve_url:
            raise GatewayError(
                "PayPal order response missing id or approve link", gateway=self.name
            )

        return CheckoutResult(
            success=True,
            session_ref=order_id,
            redirect_url=approve_url,
            state=GatewayState.REDIRECT_PENDING,
        )

    def fetch_status(self, provider_ref: str) -> GatewayStatus:
        """Capture the approved order.

        A second capture of the same order reads the order instead, so the
        call is safe to repeat.
        """
        try:
            data = send_json(
                self.client,
                "POST",
                f"{self.settings.base_url}/v2/checkout/orders/{provider_ref}/capture",
                gateway=self.name,
                headers=self._headers(**{"PayPal-Request-Id": f"capture_{provider_ref}"}),
            )
        except GatewayError as e:
            if e.status_code != 422:
                raise
            if e.provider_error_code == ALREADY_CAPTURED_ISSUE:
                logger.info("PayPal order %s already captured", provider_ref)
                return self.get_order_status(provider_ref)
            if e.provider_error_code in DECLINE_ISSUES:
                return GatewayStatus(
                    state=GatewayState.DECLINED,
                    provider_ref=provider_ref,
                    provider_status=e.provider_error_code,
                    failure_reason=f"PayPal declined the payment ({e.provider_error_code})",
                )
            if e.provider_error_code == NOT_APPROVED_ISSUE:
                return GatewayStatus(
                    state=GatewayState.REDIRECT_PENDING,
                    provider_ref=provider_ref,
                    provider_status=e.provider_error_code,
                )
            raise

        return self._order_status(provider_ref, data)

    def get_order_status(self, order_id: str) -> GatewayStatus:
        data = send_json(
            self.client,
            "GET",
            f"{self.settings.base_url}/v2/checkout/orders/{order_id}",
            gateway=self.name,
            headers=self._headers(),
        )
        return self._order_status(order_id, data)

    def _order_status(self, order_id: str, data: dict[str, Any]) -> GatewayStatus:
        order_status = str(data.get("status", ""))
        unit = (data.get("purchase_units") or [{}])[0]
        captures = (unit.get("payments") or {}).get("captures") or []
        capture = captures[0] if captures else {}

        booking_id = unit.get("custom_id") or capture.get("custom_id")
        reference = unit.get("reference_id", "")
        if not booking_id and reference.startswith(REFERENCE_PREFIX):
            booking_id = reference.removeprefix(REFERENCE_PREFIX)

        amount = (capture.get("amount") or unit.get("amount") or {}).get("value")
        capture_status = capture.get("status")

        if order_status == "COMPLETED" and capture_status in (None, "COMPLETED"):
            state = GatewayState.CAPTURED
        elif order_status in DECLINED_ORDER_STATUSES or capture_status == "DECLINED":
            state = GatewayState.DECLINED
        elif order_status == "APPROVED":
            state = GatewayState.DIRECT_AUTHORIZED
        else:
            state = GatewayState.REDIRECT_PENDING

        return GatewayStatus(
            state=state,
            provider_ref=order_id,
            booking_id=booking_id,
            amount=to_decimal(amount) if amount is not None else None,
            provider_status=capture_status or order_status,
            capture_ref=capture.get("id"),
            failure_reason=(
                f"PayPal order {(capture_status or order_status).lower()}"
                if state == GatewayState.DECLINED
                else None
            ),
        )

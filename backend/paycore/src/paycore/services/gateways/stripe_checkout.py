"""Stripe Checkout adapter (webhook-checkout flow).

Uses the v8+ ``StripeClient`` pattern. The customer pays on a
Stripe-hosted Checkout page; the outcome arrives as signed webhook events
and can also be read back by retrieving the Checkout Session.
"""

import json
import logging
from decimal import Decimal
from typing import Any

import stripe
from stripe import StripeClient

from paycore.config import StripeSettings
from paycore.models import (
    CheckoutRequest,
    CheckoutResult,
    GatewayError,
    GatewayState,
    GatewayStatus,
    PaymentMethod,
    PaymentSession,
    TransientGatewayError,
    WebhookEvent,
)

from .base import WebhookGatewayAdapter, idempotency_key

logger = logging.getLogger(__name__)

# Stripe requires at least 30 minutes; the margin covers retries
CHECKOUT_LIFETIME = 35 * 60

# Webhook event type -> state it reports (None: read payment_status)
HANDLED_EVENTS: dict[str, GatewayState | None] = {
    "checkout.session.completed": None,
    "checkout.session.async_payment_succeeded": GatewayState.CAPTURED,
    "checkout.session.async_payment_failed": GatewayState.DECLINED,
    "checkout.session.expired": GatewayState.DECLINED,
}

FAILURE_REASONS = {
    "checkout.session.async_payment_failed": "Stripe payment failed",
    "checkout.session.expired": "Stripe checkout session expired",
}


def _map_stripe_error(e: stripe.StripeError, action: str) -> GatewayError:
    error_code = getattr(e, "code", None)
    http_status = getattr(e, "http_status", None)
    logger.error("Stripe %s failed: %s (code: %s)", action, e, error_code)

    transient = isinstance(e, (stripe.APIConnectionError, stripe.RateLimitError)) or (
        http_status is not None and http_status >= 500
    )
    error_cls = TransientGatewayError if transient else GatewayError
    return error_cls(
        f"Failed to {action}: {e}",
        gateway="stripe",
        provider_error_code=error_code,
        status_code=http_status,
    )


class StripeCheckoutAdapter(WebhookGatewayAdapter):
    name = "stripe"
    payment_method = PaymentMethod.CARD

    def __init__(self, *args: Any, client: StripeClient | None = None, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._client = client

    @property
    def settings(self) -> StripeSettings:
        return self.config.stripe

    def is_configured(self) -> bool:
        return self.config.validate_stripe_config()

    def _get_client(self) -> StripeClient:
        """Get or create the Stripe client (lazy initialization)."""
        if self._client is None:
            self._client = StripeClient(self.settings.secret_key)
            logger.info("Stripe client initialized for environment: %s", self.config.environment)
        return self._client

    def _create_checkout(self, request: CheckoutRequest, session: PaymentSession) -> CheckoutResult:
        separator = "&" if "?" in request.return_url else "?"
        success_url = f"{request.return_url}{separator}session_id={{CHECKOUT_SESSION_ID}}"
        expires_at = int(session.created_at.timestamp()) + CHECKOUT_LIFETIME

        params: dict[str, Any] = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": [
                {
                    "price_data": {
                        "currency": request.currency.lower(),
                        "unit_amount": request.amount_minor,
                        "product_data": {
                            "name": "Booking Payment",
                            "description": request.description,
                        },
                    },
                    "quantity": 1,
                }
            ],
            "success_url": success_url,
            "cancel_url": request.cancel_url,
            "client_reference_id": request.booking_id,
            "metadata": {"booking_id": request.booking_id, "user_id": request.user_id},
            "expires_at": expires_at,
        }
        if request.customer_email:
            params["customer_email"] = request.customer_email

        try:
            logger.info(
                "Creating Stripe checkout session for booking %s, amount %d centavos",
                request.booking_id,
                request.amount_minor,
            )
            checkout = self._get_client().checkout.sessions.create(
                params=params,
                options={"idempotency_key": f"checkout_{idempotency_key(session)}"},
            )
        except stripe.StripeError as e:
            raise _map_stripe_error(e, "create checkout session") from e

        logger.info("Checkout session created: %s for booking %s", checkout.id, request.booking_id)
        return CheckoutResult(
            success=True,
            session_ref=checkout.id,
            redirect_url=checkout.url,
            state=GatewayState.REDIRECT_PENDING,
        )

    def fetch_status(self, provider_ref: str) -> GatewayStatus:
        try:
            checkout = self._get_client().checkout.sessions.retrieve(provider_ref)
        except stripe.StripeError as e:
            raise _map_stripe_error(e, "retrieve checkout session") from e

        data = checkout.to_dict() if hasattr(checkout, "to_dict") else dict(checkout)
        if data.get("status") == "expired":
            state = GatewayState.DECLINED
        elif data.get("payment_status") in ("paid", "no_payment_required"):
            state = GatewayState.CAPTURED
        elif data.get("status") == "complete":
            # Completed with an async method still settling
            state = GatewayState.DIRECT_AUTHORIZED
        else:
            state = GatewayState.REDIRECT_PENDING

        reason = "Stripe checkout session expired" if state == GatewayState.DECLINED else None
        return self._status(data, state, reason)

    def expire_checkout(self, provider_ref: str) -> bool:
        try:
            self._get_client().checkout.sessions.expire(provider_ref)
        except stripe.StripeError as e:
            # Already completed or expired sessions refuse; the ledger still
            # catches a second capture.
            logger.warning("Could not expire checkout session %s: %s", provider_ref, e)
            return False
        logger.info("Expired superseded checkout session %s", provider_ref)
        return True

    def _status(
        self,
        session: dict[str, Any],
        state: GatewayState,
        failure_reason: str | None = None,
    ) -> GatewayStatus:
        metadata = session.get("metadata") or {}
        amount_total = session.get("amount_total")
        payment_intent = session.get("payment_intent")
        if isinstance(payment_intent, dict):
            payment_intent = payment_intent.get("id")

        return GatewayStatus(
            state=state,
            provider_ref=session["id"],
            booking_id=metadata.get("booking_id") or session.get("client_reference_id"),
            amount=Decimal(amount_total) / 100 if amount_total is not None else None,
            provider_status=session.get("payment_status") or session.get("status"),
            capture_ref=payment_intent,
            failure_reason=failure_reason,
        )

    # Webhooks

    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:
        try:
            stripe.WebhookSignature.verify_header(
                payload.decode("utf-8"), signature, self.settings.webhook_secret
            )
        except UnicodeDecodeError:
            logger.warning("Rejected webhook body that is not UTF-8")
            return False
        except stripe.SignatureVerificationError as e:
            logger.warning("Invalid webhook signature: %s", e)
            return False
        return True

    def parse_webhook_event(self, payload: bytes) -> WebhookEvent:
        event = json.loads(payload)
        event_type = event.get("type", "")
        session = (event.get("data") or {}).get("object") or {}
        booking_id = (session.get("metadata") or {}).get("booking_id") or session.get(
            "client_reference_id"
        )

        status = None
        if event_type in HANDLED_EVENTS and session.get("id"):
            state = HANDLED_EVENTS[event_type]
            if state is None:
                paid = session.get("payment_status") in ("paid", "no_payment_required")
                state = GatewayState.CAPTURED if paid else GatewayState.DIRECT_AUTHORIZED
            status = self._status(session, state, FAILURE_REASONS.get(event_type))

        return WebhookEvent(
            event_id=event.get("id") or f"{session.get('id')}_{event_type}",
            event_type=event_type,
            booking_id=booking_id,
            status=status,
        )


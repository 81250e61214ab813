"""Gateway adapter interface.

Every provider follows the same state machine::

    created -> redirect_pending | direct_authorized -> captured | declined

``captured`` settles the booking as ``Upcoming`` and ``declined`` as
``Payment Rejected``, both through ``PaymentLedger``. Subclasses only
translate between the normalized models and the provider API.
"""

import logging
from abc import ABC, abstractmethod

from paycore.config import PaymentConfig
from paycore.models import (
    CheckoutRequest,
    CheckoutResult,
    ErrorCode,
    GatewayError,
    GatewayState,
    GatewayStatus,
    PaymentError,
    PaymentMethod,
    PaymentSession,
    ProcessingOutcome,
    ProcessingResult,
    WebhookEvent,
    get_user_friendly_gateway_message,
)
from paycore.utils.logging import log_payment_operation, log_webhook_event

from ..ledger import PaymentLedger
from ..retry import RetryPolicy, gateway_call_policy, verification_policy
from ..session_guard import SessionGuard
from ..webhook_log import WebhookEventStore

logger = logging.getLogger(__name__)

CREATE_FAILED_MESSAGE = "Failed to create payment. Please try again."
DEFAULT_DECLINE_REASON = "Payment was declined by the payment provider"


def idempotency_key(session: PaymentSession) -> str:
    """Stable per session, distinct across sessions of the same booking."""
    return f"{session.booking_id}_{int(session.created_at.timestamp())}"


class GatewayAdapter(ABC):
    """Base class for one payment provider."""

    name: str
    payment_method: PaymentMethod

    def __init__(
        self,
        config: PaymentConfig,
        sessions: SessionGuard,
        ledger: PaymentLedger,
        call_policy: RetryPolicy | None = None,
        status_policy: RetryPolicy | None = None,
    ) -> None:
        self.config = config
        self.sessions = sessions
        self.ledger = ledger
        self.call_policy = call_policy or gateway_call_policy(config.policy)
        self.status_policy = status_policy or verification_policy(config.policy)

    @abstractmethod
    def is_configured(self) -> bool:
        """True when every credential the provider needs is present."""

    @abstractmethod
    def _create_checkout(self, request: CheckoutRequest, session: PaymentSession) -> CheckoutResult:
        """Call the provider to start a payment for a freshly opened session.

        Runs once per retry attempt; anything derived from ``session`` stays
        stable across attempts.

        Raises:
            TransientGatewayError: retryable provider/network failure
            GatewayError: permanent provider failure
        """

    @abstractmethod
    def fetch_status(self, provider_ref: str) -> GatewayStatus:
        """Fetch (or, for order capture, settle) the authoritative provider status."""

    def expire_checkout(self, provider_ref: str) -> bool:
        """Close a superseded provider checkout so it can no longer be paid.

        Returns True when the provider closed it. Providers whose checkouts
        cannot be closed from the merchant side keep this default.
        """
        return False

    def create_payment(self, request: CheckoutRequest) -> CheckoutResult:
        """Open a session for the booking and start the provider payment.

        Raises:
            PaymentError: SESSION_ACTIVE when another attempt is in flight,
                GATEWAY_NOT_CONFIGURED when credentials are missing.
        """
        if not self.is_configured():
            raise PaymentError(
                ErrorCode.GATEWAY_NOT_CONFIGURED, details={"gateway": self.name}
            )

        session = self.sessions.create_session(
            request.booking_id, request.user_id, self.name, request.amount
        )
        result = self.call_policy.execute(
            lambda: self._create_checkout(request, session),
            name=f"{self.name}.create_payment",
        )
        if not result.success or result.value is None or not result.value.success:
            provider_code = getattr(result.error, "provider_error_code", None)
            reason = str(result.error) if result.error else "Provider refused the payment"
            self.sessions.fail_pending_session(request.booking_id, reason)
            log_payment_operation(
                logger,
                "create_payment",
                booking_id=request.booking_id,
                gateway=self.name,
                amount=request.amount,
                error=reason,
                attempts=result.attempts,
            )
            return CheckoutResult(
                success=False,
                state=GatewayState.DECLINED,
                error=get_user_friendly_gateway_message(provider_code, CREATE_FAILED_MESSAGE),
            )

        checkout = result.value
        if checkout.session_ref:
            self.sessions.attach_gateway_reference(
                request.booking_id, checkout.session_ref, checkout.redirect_url
            )
        log_payment_operation(
            logger,
            "create_payment",
            booking_id=request.booking_id,
            gateway=self.name,
            amount=request.amount,
            status=checkout.state.value,
            provider_ref=checkout.session_ref,
        )
        return checkout

    def handle_result(self, booking_id: str, provider_ref: str) -> ProcessingResult:
        """Pull path: fetch the provider status and settle a terminal outcome."""
        session = self.sessions.get_session(booking_id)
        if session and session.gateway_reference and session.gateway_reference != provider_ref:
            logger.warning(
                "Reference %s does not match session %s for booking %s",
                provider_ref,
                session.gateway_reference,
                booking_id,
            )
            return ProcessingResult(
                outcome=ProcessingOutcome.ERROR,
                booking_id=booking_id,
                message="Payment reference does not match the payment session",
            )

        result = self.status_policy.execute(
            lambda: self.fetch_status(provider_ref), name=f"{self.name}.fetch_status"
        )
        if not result.success or result.value is None:
            raise result.error or GatewayError("Status lookup failed", gateway=self.name)

        return self.apply_status(booking_id, result.value)

    def apply_status(self, booking_id: str, status: GatewayStatus) -> ProcessingResult:
        """Settle a terminal status; non-terminal states leave everything unchanged."""
        if status.booking_id and status.booking_id != booking_id:
            logger.warning(
                "%s reference %s belongs to booking %s, not %s",
                self.name,
                status.provider_ref,
                status.booking_id,
                booking_id,
            )
            return ProcessingResult(
                outcome=ProcessingOutcome.ERROR,
                booking_id=booking_id,
                message="Payment reference does not belong to this booking",
            )

        if status.state == GatewayState.CAPTURED:
            return self.ledger.record_success(
                booking_id,
                payment_method=self.payment_method.value,
                verified_by=self.name,
                gateway_reference=status.capture_ref or status.provider_ref,
                checkout_reference=status.provider_ref,
                amount=status.amount,
            )

        if status.state == GatewayState.DECLINED:
            return self.ledger.record_failure(
                booking_id,
                payment_method=self.payment_method.value,
                reason=status.failure_reason or DEFAULT_DECLINE_REASON,
            )

        return ProcessingResult(
            outcome=ProcessingOutcome.PENDING,
            booking_id=booking_id,
            message=f"Payment is {status.state.value}",
        )


class WebhookGatewayAdapter(GatewayAdapter):
    """Adapter whose provider also pushes signed webhooks."""

    def __init__(
        self,
        config: PaymentConfig,
        sessions: SessionGuard,
        ledger: PaymentLedger,
        webhook_log: WebhookEventStore,
        call_policy: RetryPolicy | None = None,
        status_policy: RetryPolicy | None = None,
    ) -> None:
        super().__init__(config, sessions, ledger, call_policy, status_policy)
        self.webhook_log = webhook_log

    @abstractmethod
    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:
        """Constant-time check of the provider signature over the raw body."""

    @abstractmethod
    def parse_webhook_event(self, payload: bytes) -> WebhookEvent:
        """Translate a verified body into a normalized event."""

    def process_webhook_event(self, payload: bytes, signature: str) -> ProcessingResult:
        """Verify, de-duplicate and apply a pushed event.

        Raises:
            PaymentError: INVALID_WEBHOOK_SIGNATURE before anything is read or
                written.
        """
        if not signature or not self.verify_webhook_signature(payload, signature):
            logger.warning("Rejected %s webhook with invalid signature", self.name)
            raise PaymentError(ErrorCode.INVALID_WEBHOOK_SIGNATURE)

        event = self.parse_webhook_event(payload)

        if self.webhook_log.is_processed(event.event_id):
            log_webhook_event(
                logger,
                self.name,
                event.event_type,
                event.event_id,
                booking_id=event.booking_id,
                result="duplicate",
            )
            return ProcessingResult(
                outcome=ProcessingOutcome.DUPLICATE,
                booking_id=event.booking_id,
                event_id=event.event_id,
                message="Duplicate event ignored",
            )

        if event.status is None or event.booking_id is None:
            message = (
                "Missing booking reference"
                if event.status is not None
                else f"Unhandled event type {event.event_type}"
            )
            self._finish(event, payload, "skipped", message)
            return ProcessingResult(
                outcome=ProcessingOutcome.SKIPPED,
                booking_id=event.booking_id,
                event_id=event.event_id,
                message=message,
            )

        if self._is_superseded_decline(event.booking_id, event.status):
            message = f"Checkout {event.status.provider_ref} was replaced by a newer session"
            self._finish(event, payload, "skipped", message)
            return ProcessingResult(
                outcome=ProcessingOutcome.SKIPPED,
                booking_id=event.booking_id,
                event_id=event.event_id,
                message=message,
            )

        try:
            result = self.apply_status(event.booking_id, event.status)
        except Exception as e:
            self._finish(event, payload, "error", str(e))
            raise

        result_label = "error" if result.outcome == ProcessingOutcome.ERROR else "success"
        self._finish(event, payload, result_label, result.message)
        return result.model_copy(update={"event_id": event.event_id})

    def _is_superseded_decline(self, booking_id: str, status: GatewayStatus) -> bool:
        # A capture through an old checkout still settles (or is queued for
        # refund by the ledger); only declines of old checkouts are dropped.
        if status.state != GatewayState.DECLINED:
            return False
        session = self.sessions.get_session(booking_id)
        return bool(
            session is not None
            and session.gateway_reference
            and session.gateway_reference != status.provider_ref
        )

    def _finish(
        self,
        event: WebhookEvent,
        payload: bytes,
        processing_result: str,
        message: str | None,
    ) -> None:
        error = message if processing_result in ("error", "skipped") else None
        self.webhook_log.log_event(
            event_id=event.event_id,
            gateway=self.name,
            event_type=event.event_type,
            payload=payload,
            booking_id=event.booking_id,
            processing_result=processing_result,
            error_message=error,
        )
        log_webhook_event(
            logger,
            self.name,
            event.event_type,
            event.event_id,
            booking_id=event.booking_id,
            result=processing_result,
            error=message if processing_result == "error" else None,
        )

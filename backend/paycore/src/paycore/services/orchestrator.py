"""Gateway checkout orchestration.

``PaymentOrchestrator`` is the entry point for redirect and hosted-checkout
payments: validate, open a session through the method's adapter, and later
settle the outcome when the client returns.
"""

import logging
from decimal import Decimal
from typing import TYPE_CHECKING

from paycore.config import PaymentConfig
from paycore.models import (
    CheckoutRequest,
    CheckoutResult,
    ErrorCode,
    PaymentError,
    PaymentEvent,
    PaymentEventType,
    PaymentMethod,
    PaymentSession,
    ProcessingOutcome,
    ProcessingResult,
    SessionStatus,
)
from paycore.utils.clock import Clock, utc_now
from paycore.utils.money import to_decimal

if TYPE_CHECKING:
    from .gateways import GatewayAdapter
    from .monitoring import PaymentMonitor
    from .retry import RetryPolicy
    from .session_guard import SessionGuard
    from .validator import PaymentValidator

logger = logging.getLogger(__name__)


class PaymentOrchestrator:
    """Coordinates validator, session guard and gateway adapters."""

    def __init__(
        self,
        config: PaymentConfig,
        validator: "PaymentValidator",
        sessions: "SessionGuard",
        adapters: "dict[PaymentMethod, GatewayAdapter]",
        retry_policy: "RetryPolicy | None" = None,
        monitor: "PaymentMonitor | None" = None,
        clock: Clock = utc_now,
    ) -> None:
        self.config = config
        self.validator = validator
        self.sessions = sessions
        self.adapters = adapters
        self.monitor = monitor
        self.clock = clock
        if retry_policy is not None:
            for adapter in adapters.values():
                adapter.call_policy = retry_policy

    def adapter_for(self, method: str) -> "GatewayAdapter":
        """The adapter serving ``method``.

        Raises:
            PaymentError: UNKNOWN_PAYMENT_METHOD for manual or unknown methods.
        """
        try:
            return self.adapters[PaymentMethod(method)]
        except (ValueError, KeyError):
            raise PaymentError(
                ErrorCode.UNKNOWN_PAYMENT_METHOD, details={"method": method}
            ) from None

    def _adapter_by_name(self, gateway: str) -> "GatewayAdapter":
        for adapter in self.adapters.values():
            if adapter.name == gateway:
                return adapter
        raise PaymentError(ErrorCode.UNKNOWN_PAYMENT_METHOD, details={"gateway": gateway})

    def _release_checkout(self, previous: PaymentSession) -> None:
        """Close the provider checkout of an expired or cancelled session."""
        if previous.status not in (SessionStatus.PENDING, SessionStatus.CANCELLED):
            return
        if not previous.gateway_reference:
            return
        try:
            adapter = self._adapter_by_name(previous.gateway)
        except PaymentError:
            logger.warning(
                "No adapter for gateway %s, cannot expire %s",
                previous.gateway,
                previous.gateway_reference,
            )
            return
        if adapter.expire_checkout(previous.gateway_reference):
            logger.info(
                "Expired checkout %s superseded on booking %s",
                previous.gateway_reference,
                previous.booking_id,
            )

    def start_checkout(
        self,
        booking_id: str,
        user_id: str,
        amount: Decimal | float,
        method: str,
        customer_email: str | None = None,
    ) -> CheckoutResult:
        """Validate the request and start a gateway payment.

        Returns:
            CheckoutResult with the redirect URL, or ``success=False`` with a
            generic message when the provider refused.

        Raises:
            PaymentError: VALIDATION_FAILED, UNKNOWN_PAYMENT_METHOD,
                GATEWAY_NOT_CONFIGURED or SESSION_ACTIVE.
        """
        adapter = self.adapter_for(method)

        validation = self.validator.validate_payment(booking_id, user_id, amount, method)
        if not validation.valid:
            raise PaymentError(
                ErrorCode.VALIDATION_FAILED,
                details={"booking_id": booking_id},
                message=validation.error,
            )

        if not adapter.is_configured():
            raise PaymentError(ErrorCode.GATEWAY_NOT_CONFIGURED, details={"method": method})

        previous = self.sessions.get_session(booking_id)
        if previous is not None and self.sessions.is_active(previous):
            raise PaymentError(ErrorCode.SESSION_ACTIVE, details={"booking_id": booking_id})
        if previous is not None:
            self._release_checkout(previous)

        results_base = f"{self.config.app_url}/bookings/{booking_id}/payment"
        request = CheckoutRequest(
            booking_id=booking_id,
            user_id=user_id,
            amount=to_decimal(amount),
            customer_email=customer_email,
            description=f"Booking {booking_id}",
            return_url=f"{results_base}/success?method={method}",
            cancel_url=f"{results_base}/cancel?method={method}",
        )
        result = adapter.create_payment(request)

        if result.success and self.monitor is not None:
            try:
                self.monitor.track_event(
                    PaymentEvent(
                        event_type=PaymentEventType.PAYMENT_CREATED,
                        booking_id=booking_id,
                        user_id=user_id,
                        amount=request.amount,
                        payment_method=method,
                        timestamp=self.clock(),
                        metadata={"gateway": adapter.name, "reference": result.session_ref},
                    )
                )
            except Exception:
                logger.exception("Failed to track payment_created for booking %s", booking_id)
        return result

    def complete_checkout(
        self,
        booking_id: str,
        user_id: str,
        provider_ref: str | None = None,
    ) -> ProcessingResult:
        """Settle a checkout after the client returns from the provider.

        A session that already completed (the webhook won the race) is
        reported as ALREADY_PROCESSED so redirects stay idempotent.

        Raises:
            PaymentError: SESSION_NOT_FOUND, UNAUTHORIZED or SESSION_INVALID.
        """
        session = self.sessions.get_session(booking_id)
        if session is None:
            raise PaymentError(ErrorCode.SESSION_NOT_FOUND, details={"booking_id": booking_id})
        if session.user_id != user_id:
            raise PaymentError(ErrorCode.UNAUTHORIZED, details={"booking_id": booking_id})

        if session.status == SessionStatus.COMPLETED:
            return ProcessingResult(
                outcome=ProcessingOutcome.ALREADY_PROCESSED,
                booking_id=booking_id,
                message="Payment session already completed",
            )

        check = self.sessions.validate_session(booking_id)
        if not check.valid:
            raise PaymentError(
                ErrorCode.SESSION_INVALID,
                details={"booking_id": booking_id},
                message=check.error,
            )

        reference = provider_ref or session.gateway_reference
        if not reference:
            raise PaymentError(
                ErrorCode.SESSION_INVALID,
                details={"booking_id": booking_id},
                message="Payment session has no provider reference",
            )
        return self._adapter_by_name(session.gateway).handle_result(booking_id, reference)

    def cancel_checkout(self, booking_id: str, user_id: str) -> bool:
        """Cancel the caller's pending session; False when there was none."""
        return self.sessions.cancel_session(booking_id, user_id)

"""Structured logging with a per-request correlation ID.

The API middleware sets the ID; every record logged while handling that
request is prefixed with it. Payment and webhook helpers attach their
fields both to the message text and to ``record.__dict__`` via ``extra``.

Usage:
    from paycore.utils.logging import get_logger, log_payment_operation

    logger = get_logger(__name__)
    log_payment_operation(logger, "record_success", booking_id="BK-123", gateway="paypal")
"""

import logging
import uuid
from contextvars import ContextVar
from decimal import Decimal
from typing import Any

NO_CORRELATION_ID = "no-correlation-id"

_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Bind a correlation ID to the current context, generating one if absent."""
    cid = correlation_id or str(uuid.uuid4())
    _correlation_id.set(cid)
    return cid


def clear_correlation_id() -> None:
    _correlation_id.set(None)


class CorrelationIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = _correlation_id.get() or NO_CORRELATION_ID
        return True


class StructuredFormatter(logging.Formatter):
    """Prefixes each line with ``[correlation_id]``."""

    def format(self, record: logging.LogRecord) -> str:
        cid = getattr(record, "correlation_id", None) or _correlation_id.get() or NO_CORRELATION_ID
        return f"[{cid}] {super().format(record)}"


def get_logger(name: str) -> logging.Logger:
    """``logging.getLogger`` with the correlation filter attached once."""
    logger = logging.getLogger(name)
    if not any(isinstance(f, CorrelationIdFilter) for f in logger.filters):
        logger.addFilter(CorrelationIdFilter())
    return logger


def configure_logging(level: int = logging.INFO) -> None:
    """Install the structured handler on the root logger. Idempotent."""
    root = logging.getLogger()
    root.setLevel(level)
    if any(isinstance(h.formatter, StructuredFormatter) for h in root.handlers):
        return

    handler = logging.StreamHandler()
    handler.addFilter(CorrelationIdFilter())
    handler.setFormatter(StructuredFormatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root.addHandler(handler)


def _emit(logger: logging.Logger, level: int, headline: str, context: dict[str, Any]) -> None:
    fields = " | ".join(f"{key}={value}" for key, value in context.items())
    logger.log(level, f"{headline} | {fields}" if fields else headline, extra=context)


def log_payment_operation(
    logger: logging.Logger,
    operation: str,
    *,
    booking_id: str | None = None,
    gateway: str | None = None,
    amount: Decimal | float | None = None,
    status: str | None = None,
    error: str | None = None,
    **extra: Any,
) -> None:
    """Log a booking payment state change.

    Logged at ERROR when ``error`` is given, INFO otherwise. ``None`` fields
    are left out of both the message and the record.
    """
    context = {
        key: value
        for key, value in {
            "booking_id": booking_id,
            "gateway": gateway,
            "amount": None if amount is None else str(amount),
            "status": status,
            "error": error,
            **extra,
        }.items()
        if value is not None
    }
    level = logging.ERROR if error else logging.INFO
    _emit(logger, level, f"Payment operation: {operation}", context)


# Webhook results that are expected but still worth noticing
_WARN_RESULTS = frozenset({"duplicate", "skipped"})


def log_webhook_event(
    logger: logging.Logger,
    gateway: str,
    event_type: str,
    event_id: str,
    *,
    booking_id: str | None = None,
    result: str | None = None,
    error: str | None = None,
    **extra: Any,
) -> None:
    """Log one inbound gateway event and how it was handled.

    Args:
        logger: Logger instance
        gateway: Gateway that sent the event (stripe, maya_checkout)
        event_type: Provider event type (e.g., "checkout.session.completed")
        event_id: Provider event ID, or the derived ID for Maya
        booking_id: Booking the event settles, when known
        result: success, duplicate, skipped or error
        error: Error message when processing failed
    """
    context = {
        key: value
        for key, value in {
            "result": result,
            "booking": booking_id,
            "error": error,
            **extra,
        }.items()
        if value is not None
    }
    if result == "error":
        level = logging.ERROR
    elif result in _WARN_RESULTS:
        level = logging.WARNING
    else:
        level = logging.INFO
    _emit(logger, level, f"Webhook event: {gateway} {event_type} ({event_id})", context)

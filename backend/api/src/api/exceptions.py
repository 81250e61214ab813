"""FastAPI exception handlers for converting payment errors to HTTP responses.

The ErrorCode-to-HTTP status mapping follows REST conventions:
- 400 Bad Request: Validation failures, invalid webhook signatures
- 401 Unauthorized: Missing caller identity
- 403 Forbidden: Caller does not own the booking
- 404 Not Found: Booking or session not found
- 409 Conflict: Booking or session state does not allow the operation
- 5xx: Gateway and ledger failures

Usage:
    from api.exceptions import register_exception_handlers
    register_exception_handlers(app)
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.status import (
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

from paycore.models import (
    ErrorCode,
    ErrorResponse,
    GatewayError,
    PaymentError,
    PaymentIntegrityError,
)

logger = logging.getLogger(__name__)

# Map ErrorCode to HTTP status codes
ERROR_CODE_TO_HTTP_STATUS: dict[ErrorCode, int] = {
    # Validation errors -> 400 Bad Request
    ErrorCode.VALIDATION_FAILED: HTTP_400_BAD_REQUEST,
    ErrorCode.UNKNOWN_PAYMENT_METHOD: HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_WEBHOOK_SIGNATURE: HTTP_400_BAD_REQUEST,
    # Identity -> 401 / 403
    ErrorCode.AUTH_REQUIRED: HTTP_401_UNAUTHORIZED,
    ErrorCode.UNAUTHORIZED: HTTP_403_FORBIDDEN,
    # Not found errors -> 404 Not Found
    ErrorCode.BOOKING_NOT_FOUND: HTTP_404_NOT_FOUND,
    ErrorCode.SESSION_NOT_FOUND: HTTP_404_NOT_FOUND,
    # State conflicts -> 409 Conflict
    ErrorCode.BOOKING_NOT_PAYABLE: HTTP_409_CONFLICT,
    ErrorCode.SESSION_ACTIVE: HTTP_409_CONFLICT,
    ErrorCode.SESSION_INVALID: HTTP_409_CONFLICT,
    # Payment errors -> 402 Payment Required
    ErrorCode.PAYMENT_FAILED: HTTP_402_PAYMENT_REQUIRED,
    # Gateway errors -> 502 / 503
    ErrorCode.GATEWAY_ERROR: HTTP_502_BAD_GATEWAY,
    ErrorCode.GATEWAY_NOT_CONFIGURED: HTTP_503_SERVICE_UNAVAILABLE,
    # Ledger integrity -> 500
    ErrorCode.LEDGER_INTEGRITY: HTTP_500_INTERNAL_SERVER_ERROR,
}


def get_http_status_for_error(code: ErrorCode) -> int:
    """HTTP status for an ErrorCode, 400 when not explicitly mapped."""
    return ERROR_CODE_TO_HTTP_STATUS.get(code, HTTP_400_BAD_REQUEST)


async def payment_error_handler(request: Request, exc: PaymentError) -> JSONResponse:
    """Convert a PaymentError to its JSON error body and status code."""
    return JSONResponse(
        status_code=get_http_status_for_error(exc.code),
        content=exc.to_response().model_dump(mode="json"),
    )


async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    """Gateway failures surface as a generic message, never provider details."""
    logger.warning("Gateway error on %s: %s", request.url.path, exc)
    error = ErrorResponse.from_code(ErrorCode.GATEWAY_ERROR)
    return JSONResponse(
        status_code=HTTP_502_BAD_GATEWAY,
        content=error.model_dump(mode="json"),
    )


async def integrity_error_handler(request: Request, exc: PaymentIntegrityError) -> JSONResponse:
    """Integrity violations were already logged CRITICAL by the ledger."""
    error = ErrorResponse.from_code(
        ErrorCode.LEDGER_INTEGRITY, details={"booking_id": exc.booking_id}
    )
    return JSONResponse(
        status_code=HTTP_500_INTERNAL_SERVER_ERROR,
        content=error.model_dump(mode="json"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app."""
    app.add_exception_handler(PaymentError, payment_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(GatewayError, gateway_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(
        PaymentIntegrityError, integrity_error_handler  # type: ignore[arg-type]
    )

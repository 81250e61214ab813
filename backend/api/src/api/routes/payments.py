"""Payment endpoints for clients.

Provides REST endpoints for:
- Validating a payment request (no side effects)
- Starting, completing and cancelling gateway checkouts
- Reading the booking's payment session
- Submitting manual proof of payment

Every endpoint requires the caller identity forwarded by the API gateway
in the ``x-user-id`` header.
"""

import logging

from fastapi import APIRouter, Depends
from starlette.status import HTTP_201_CREATED

from api.dependencies import (
    get_current_user_id,
    get_manual_payment_service,
    get_orchestrator,
    get_payment_validator,
    get_session_guard,
)
from api.models.payments import (
    CancelCheckoutResponse,
    CompleteCheckoutRequest,
    ProofSubmissionRequest,
    StartCheckoutRequest,
    ValidatePaymentRequest,
)
from paycore.models import (
    CheckoutResult,
    ErrorCode,
    PaymentError,
    PaymentSession,
    ProcessingResult,
    Transaction,
    ValidationResult,
)
from paycore.services.manual import ManualPaymentService
from paycore.services.orchestrator import PaymentOrchestrator
from paycore.services.session_guard import SessionGuard
from paycore.services.validator import PaymentValidator

logger = logging.getLogger(__name__)

router = APIRouter(tags=["payments"])


@router.post(
    "/payments/validate",
    summary="Validate a payment",
    description="""
Run every payment check without creating a session or transaction.

Returns `valid=false` with all problems joined by "; " rather than an error
status, so forms can show them inline.
""",
    response_model=ValidationResult,
)
def validate_payment(
    body: ValidatePaymentRequest,
    user_id: str = Depends(get_current_user_id),
    validator: PaymentValidator = Depends(get_payment_validator),
) -> ValidationResult:
    return validator.validate_payment(
        body.booking_id, user_id, body.amount, body.payment_method, body.file
    )


@router.post(
    "/payments/checkout",
    summary="Start gateway checkout",
    description="""
Validate the payment, open a payment session and create the payment at the
gateway. Redirect the client to `redirect_url`.

**Notes:**
- Only one active session per booking; a second request returns 409
- Gateway failures return 502 with a generic message
""",
    response_model=CheckoutResult,
    status_code=HTTP_201_CREATED,
    responses={
        400: {"description": "Validation failed"},
        409: {"description": "A payment session is already active"},
        502: {"description": "Gateway refused or failed"},
        503: {"description": "Payment method not configured"},
    },
)
def start_checkout(
    body: StartCheckoutRequest,
    user_id: str = Depends(get_current_user_id),
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
) -> CheckoutResult:
    result = orchestrator.start_checkout(
        body.booking_id,
        user_id,
        body.amount,
        body.payment_method.value,
        customer_email=body.customer_email,
    )
    if not result.success:
        raise PaymentError(
            ErrorCode.GATEWAY_ERROR,
            details={"booking_id": body.booking_id},
            message=result.error,
        )
    return result


@router.post(
    "/payments/{booking_id}/complete",
    summary="Complete gateway checkout",
    description="""
Called when the client returns from the gateway. Reads (or captures) the
authoritative status and settles the booking.

**Idempotent**: if the webhook already settled the payment, returns
`already_processed`.
""",
    response_model=ProcessingResult,
)
def complete_checkout(
    booking_id: str,
    body: CompleteCheckoutRequest | None = None,
    user_id: str = Depends(get_current_user_id),
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
) -> ProcessingResult:
    provider_ref = body.provider_ref if body else None
    return orchestrator.complete_checkout(booking_id, user_id, provider_ref)


@router.post(
    "/payments/{booking_id}/cancel",
    summary="Cancel gateway checkout",
    response_model=CancelCheckoutResponse,
)
def cancel_checkout(
    booking_id: str,
    user_id: str = Depends(get_current_user_id),
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
) -> CancelCheckoutResponse:
    return CancelCheckoutResponse(cancelled=orchestrator.cancel_checkout(booking_id, user_id))


@router.get(
    "/payments/{booking_id}/session",
    summary="Get payment session",
    response_model=PaymentSession,
    responses={404: {"description": "No payment session for this booking"}},
)
def get_payment_session(
    booking_id: str,
    user_id: str = Depends(get_current_user_id),
    sessions: SessionGuard = Depends(get_session_guard),
) -> PaymentSession:
    session = sessions.get_session(booking_id)
    if session is None:
        raise PaymentError(ErrorCode.SESSION_NOT_FOUND, details={"booking_id": booking_id})
    if session.user_id != user_id:
        raise PaymentError(ErrorCode.UNAUTHORIZED, details={"booking_id": booking_id})
    return session


@router.post(
    "/payments/{booking_id}/proof",
    summary="Submit proof of payment",
    description="""
Record a manual transfer (GCash, Maya wallet, bank) with its uploaded
receipt. The booking moves to `Pending Verification` until an admin
verifies or rejects it.
""",
    response_model=Transaction,
    status_code=HTTP_201_CREATED,
)
def submit_proof(
    booking_id: str,
    body: ProofSubmissionRequest,
    user_id: str = Depends(get_current_user_id),
    manual: ManualPaymentService = Depends(get_manual_payment_service),
) -> Transaction:
    return manual.submit_proof(
        booking_id,
        user_id,
        body.amount,
        body.payment_method,
        body.file,
        body.proof_url,
    )

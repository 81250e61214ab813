"""Webhook endpoints for payment gateways.

Provides endpoints for:
- Stripe Checkout events (checkout.session.*)
- Maya Checkout payment status callbacks

These endpoints do NOT require caller identity as they receive signed
payloads from the gateways. Responses:
- 400: invalid or missing signature, nothing was read or written
- 200: processed, duplicate or skipped
- 500: processing failed; the gateway retries the delivery
"""

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from starlette.status import HTTP_500_INTERNAL_SERVER_ERROR

from api.dependencies import get_maya_adapter, get_stripe_adapter
from api.models.payments import WebhookResponse
from paycore.models import ErrorCode, PaymentError
from paycore.services.gateways import (
    MayaWalletAdapter,
    StripeCheckoutAdapter,
    WebhookGatewayAdapter,
)
from paycore.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["webhooks"])

STRIPE_SIGNATURE_HEADER = "Stripe-Signature"
MAYA_SIGNATURE_HEADER = "x-maya-signature"


async def _process(
    request: Request,
    adapter: WebhookGatewayAdapter,
    signature_header: str,
) -> WebhookResponse | JSONResponse:
    signature = request.headers.get(signature_header)
    if not signature:
        logger.warning("%s webhook missing %s header", adapter.name, signature_header)
        raise PaymentError(
            ErrorCode.INVALID_WEBHOOK_SIGNATURE,
            details={"message": f"Missing {signature_header} header"},
        )

    payload = await request.body()
    try:
        result = await run_in_threadpool(adapter.process_webhook_event, payload, signature)
    except PaymentError:
        raise
    except Exception:
        logger.exception("%s webhook processing failed", adapter.name)
        return JSONResponse(
            status_code=HTTP_500_INTERNAL_SERVER_ERROR,
            content=WebhookResponse(
                received=True,
                processing_result="error",
                message="Processing failed, retry later",
            ).model_dump(mode="json"),
        )

    return WebhookResponse(
        received=True,
        event_id=result.event_id,
        processing_result=result.outcome.value,
        message=result.message,
    )


@router.post(
    "/webhooks/stripe",
    summary="Receive Stripe webhook events",
    description="""
Handles `checkout.session.completed`, `checkout.session.async_payment_succeeded`,
`checkout.session.async_payment_failed` and `checkout.session.expired`.

**Idempotent**: duplicate events (same event id) return 200 with `duplicate`.
""",
    response_model=WebhookResponse,
    responses={
        400: {"description": "Invalid signature or missing header"},
        500: {"description": "Processing failed; Stripe will retry"},
    },
)
async def handle_stripe_webhook(
    request: Request,
    adapter: StripeCheckoutAdapter = Depends(get_stripe_adapter),
) -> WebhookResponse | JSONResponse:
    return await _process(request, adapter, STRIPE_SIGNATURE_HEADER)


@router.post(
    "/webhooks/maya",
    summary="Receive Maya Checkout webhooks",
    description="""
Handles Maya payment status callbacks signed with HMAC-SHA256.

**Idempotent**: the same checkout and status twice returns 200 with `duplicate`.
""",
    response_model=WebhookResponse,
    responses={
        400: {"description": "Invalid signature or missing header"},
        500: {"description": "Processing failed; Maya will retry"},
    },
)
async def handle_maya_webhook(
    request: Request,
    adapter: MayaWalletAdapter = Depends(get_maya_adapter),
) -> WebhookResponse | JSONResponse:
    return await _process(request, adapter, MAYA_SIGNATURE_HEADER)

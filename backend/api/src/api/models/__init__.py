"""API-specific request/response models.

Domain models (PaymentSession, Transaction, ProcessingResult, etc.) are in
paycore.models and are reused here where appropriate.
"""

from api.models.payments import (
    AnomalyResponse,
    CancelCheckoutResponse,
    CompleteCheckoutRequest,
    DrainResponse,
    MetricsResponse,
    ProofSubmissionRequest,
    RejectPaymentRequest,
    StartCheckoutRequest,
    ValidatePaymentRequest,
    WebhookResponse,
)

__all__ = [
    "AnomalyResponse",
    "CancelCheckoutResponse",
    "CompleteCheckoutRequest",
    "DrainResponse",
    "MetricsResponse",
    "ProofSubmissionRequest",
    "RejectPaymentRequest",
    "StartCheckoutRequest",
    "ValidatePaymentRequest",
    "WebhookResponse",
]

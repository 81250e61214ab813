"""Payment gateway adapters."""

from .base import GatewayAdapter, WebhookGatewayAdapter, idempotency_key
from .maya_wallet import MayaWalletAdapter, map_maya_status
from .paypal_orders import PayPalOrderAdapter
from .stripe_checkout import StripeCheckoutAdapter

__all__ = [
    "GatewayAdapter",
    "WebhookGatewayAdapter",
    "idempotency_key",
    "MayaWalletAdapter",
    "map_maya_status",
    "PayPalOrderAdapter",
    "StripeCheckoutAdapter",
]

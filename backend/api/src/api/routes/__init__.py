"""API routes package.

Routers are organized by audience:

- payments: Client payment operations
- admin: Manual verification, metrics, anomalies, notifications
- webhooks: Signed gateway callbacks

All routers are registered in main.py with /api prefix.
"""

from api.routes.admin import router as admin_router
from api.routes.payments import router as payments_router
from api.routes.webhooks import router as webhooks_router

__all__ = [
    "admin_router",
    "payments_router",
    "webhooks_router",
]

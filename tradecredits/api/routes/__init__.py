"""API route modules."""

from tradecredits.api.routes.credits import router as credits_router
from tradecredits.api.routes.payments import router as payments_router
from tradecredits.api.routes.webhooks import router as webhooks_router

__all__ = ["credits_router", "payments_router", "webhooks_router"]

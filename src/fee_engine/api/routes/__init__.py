"""API routes."""

from fee_engine.api.routes.fees import router as fees_router
from fee_engine.api.routes.health import router as health_router
from fee_engine.api.routes.payments import router as payments_router
from fee_engine.api.routes.permits import router as permits_router
from fee_engine.api.routes.webhooks import router as webhooks_router

__all__ = [
    "fees_router",
    "health_router",
    "payments_router",
    "permits_router",
    "webhooks_router",
]

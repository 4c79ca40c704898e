"""Billing Service routers package."""

from services.billing_service.routers.checkout import router as checkout_router
from services.billing_service.routers.orders import router as orders_router
from services.billing_service.routers.payments import router as payments_router
from services.billing_service.routers.webhooks import router as webhooks_router

__all__ = [
    "checkout_router",
    "orders_router",
    "payments_router",
    "webhooks_router",
]

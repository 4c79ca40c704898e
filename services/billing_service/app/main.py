"""FastAPI application for the Billing Service."""

from fastapi import FastAPI
from libs.common.middleware import add_observability_middleware
from services.billing_service.routers import (
    checkout_router,
    orders_router,
    payments_router,
    webhooks_router,
)


def create_app() -> FastAPI:
    """Create and configure the Billing Service FastAPI app."""
    app = FastAPI(
        title="FuelFlow Billing Service",
        version="0.1.0",
        description="Checkout, Stripe reconciliation and the order and payment ledgers.",
    )
    add_observability_middleware(app, service_name="billing")

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "billing"}

    app.include_router(webhooks_router)
    app.include_router(checkout_router)
    app.include_router(orders_router)
    app.include_router(payments_router)

    return app


app = create_app()

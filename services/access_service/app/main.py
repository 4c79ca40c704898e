"""FastAPI application for the Access Service."""

from fastapi import FastAPI
from libs.common.middleware import add_observability_middleware
from services.access_service.routers import approvals_router, gate_router


def create_app() -> FastAPI:
    """Create and configure the Access Service FastAPI app."""
    app = FastAPI(
        title="FuelFlow Access Service",
        version="0.1.0",
        description="Customer approval gate and admin approval actions.",
    )
    add_observability_middleware(app, service_name="access")

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "access"}

    app.include_router(gate_router)
    app.include_router(approvals_router)

    return app


app = create_app()

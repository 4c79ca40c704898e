"""Access Service routers package."""

from services.access_service.routers.approvals import router as approvals_router
from services.access_service.routers.gate import router as gate_router

__all__ = ["approvals_router", "gate_router"]

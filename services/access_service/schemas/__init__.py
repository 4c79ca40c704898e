"""Access Service schemas package."""

from services.access_service.schemas.main import (
    ApprovalActionResponse,
    ApprovalEntry,
    ApprovalListResponse,
    ApprovalRequest,
    BlockedMeResponse,
    GateResponse,
)

__all__ = [
    "ApprovalActionResponse",
    "ApprovalEntry",
    "ApprovalListResponse",
    "ApprovalRequest",
    "BlockedMeResponse",
    "GateResponse",
]

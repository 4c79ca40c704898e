"""Access Service models package."""

from services.access_service.models.core import Admin, AllowlistEntry, BlockedUser
from services.access_service.models.enums import (
    ApprovalAction,
    ApprovalStatus,
    GateDecision,
    RouteKind,
)

__all__ = [
    "Admin",
    "AllowlistEntry",
    "ApprovalAction",
    "ApprovalStatus",
    "BlockedUser",
    "GateDecision",
    "RouteKind",
]

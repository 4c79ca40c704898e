"""Enum definitions for access service models."""

import enum


class GateDecision(str, enum.Enum):
    PUBLIC = "public"
    UNAUTHENTICATED = "unauthenticated"
    BLOCKED = "blocked"
    FORBIDDEN = "forbidden"
    ADMIN_OK = "admin_ok"
    APPROVED = "approved"
    PENDING = "pending"
    ERROR = "error"

    @property
    def allowed(self) -> bool:
        return self in (GateDecision.PUBLIC, GateDecision.ADMIN_OK, GateDecision.APPROVED)


class RouteKind(str, enum.Enum):
    PUBLIC = "public"
    CUSTOMER = "customer"
    ADMIN = "admin"


class ApprovalAction(str, enum.Enum):
    APPROVE = "approve"
    BLOCK = "block"
    UNBLOCK = "unblock"


class ApprovalStatus(str, enum.Enum):
    PENDING = "pending"
    ALLOWED = "allowed"
    BLOCKED = "blocked"
    ALL = "all"

"""FastAPI dependencies that put API routes behind the approval gate."""

from typing import Annotated

from fastapi import Depends, HTTPException, status
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.common.config import get_settings
from libs.db.session import get_async_db
from services.access_service.gate import AccessLookups, ApprovalGate, SqlAccessLookups
from services.access_service.models import GateDecision, RouteKind
from sqlalchemy.ext.asyncio import AsyncSession

_DENIALS = {
    GateDecision.UNAUTHENTICATED: (
        status.HTTP_401_UNAUTHORIZED,
        "Token carries no email address",
    ),
    GateDecision.BLOCKED: (status.HTTP_403_FORBIDDEN, "Account blocked"),
    GateDecision.FORBIDDEN: (status.HTTP_403_FORBIDDEN, "Admin privileges required"),
    GateDecision.PENDING: (status.HTTP_403_FORBIDDEN, "Account pending approval"),
    GateDecision.ERROR: (
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "Access check unavailable, try again shortly",
    ),
}


def get_access_lookups(db: AsyncSession = Depends(get_async_db)) -> AccessLookups:
    return SqlAccessLookups(db)


def get_approval_gate(
    lookups: AccessLookups = Depends(get_access_lookups),
) -> ApprovalGate:
    return ApprovalGate(lookups, fail_open=get_settings().ACCESS_FAIL_OPEN)


def raise_for_decision(decision: GateDecision) -> None:
    """Raise the HTTP error matching a denied gate decision."""
    if decision.allowed:
        return
    status_code, detail = _DENIALS[decision]
    raise HTTPException(status_code=status_code, detail=detail)


async def _enforce(gate: ApprovalGate, user: AuthUser, route: RouteKind) -> AuthUser:
    raise_for_decision(await gate.decide(user.email, route))
    return user


async def require_admin(
    current_user: Annotated[AuthUser, Depends(get_current_user)],
    gate: Annotated[ApprovalGate, Depends(get_approval_gate)],
) -> AuthUser:
    """Allow service-role callers and emails listed in the admins table."""
    if current_user.role == "service_role":
        return current_user
    return await _enforce(gate, current_user, RouteKind.ADMIN)


async def require_approved_customer(
    current_user: Annotated[AuthUser, Depends(get_current_user)],
    gate: Annotated[ApprovalGate, Depends(get_approval_gate)],
) -> AuthUser:
    """Allow allow-listed customers who are not blocked."""
    return await _enforce(gate, current_user, RouteKind.CUSTOMER)

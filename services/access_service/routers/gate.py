"""Gate check consumed by the page middleware, plus the caller's block status."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from libs.auth.dependencies import get_optional_user
from libs.auth.models import AuthUser
from libs.common.logging import get_logger
from libs.db.session import get_async_db
from services.access_service.dependencies import get_approval_gate
from services.access_service.gate import ApprovalGate
from services.access_service.models import BlockedUser, GateDecision
from services.access_service.schemas import BlockedMeResponse, GateResponse
from services.access_service.supabase_admin import SupabaseAuthAdmin, get_auth_admin
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["access"])
logger = get_logger(__name__)


@router.get("/access/gate", response_model=GateResponse)
async def check_gate(
    response: Response,
    path: str = Query(..., min_length=1),
    current_user: Optional[AuthUser] = Depends(get_optional_user),
    gate: ApprovalGate = Depends(get_approval_gate),
    auth_admin: SupabaseAuthAdmin = Depends(get_auth_admin),
):
    """
    Decide whether the caller may render ``path``.

    Always answers 200; the decision and redirect tell the page middleware
    what to do. A blocked caller's sessions are revoked as a side effect.
    """
    # The answer depends on mutable access tables, never cache it
    response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate"

    email = current_user.email if current_user else None
    result = await gate.evaluate(email, path)

    signed_out = False
    if result.decision == GateDecision.BLOCKED and current_user and current_user.token:
        revoke = await auth_admin.sign_out(current_user.token)
        signed_out = revoke.ok
        if not revoke.ok:
            logger.warning(
                "Could not revoke sessions for blocked user %s: %s",
                result.email,
                revoke.error,
            )

    if not result.allowed:
        logger.info(
            "Gate denied %s for %s",
            path,
            result.email or "anonymous",
            extra={"extra_fields": {"decision": result.decision.value}},
        )

    return GateResponse(
        decision=result.decision,
        allowed=result.allowed,
        route=result.route,
        email=result.email,
        redirect=result.redirect,
        signed_out=signed_out,
    )


@router.get("/blocked/me", response_model=BlockedMeResponse)
async def blocked_me(
    current_user: Optional[AuthUser] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Report whether the caller is blocked. Anonymous callers are not."""
    if current_user is None:
        return BlockedMeResponse(blocked=False)

    row = (
        await db.execute(
            select(BlockedUser).where(BlockedUser.user_id == current_user.user_id)
        )
    ).scalar_one_or_none()

    if row is None and current_user.normalized_email:
        row = await db.get(BlockedUser, current_user.normalized_email)

    if row is None:
        return BlockedMeResponse(blocked=False)
    return BlockedMeResponse(blocked=True, reason=row.reason)

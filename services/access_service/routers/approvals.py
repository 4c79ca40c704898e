"""Admin approval actions: approve, block and unblock customer emails."""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from libs.auth.models import AuthUser
from libs.common.config import get_settings
from libs.common.datetime_utils import as_utc
from libs.common.logging import get_logger
from libs.db.session import get_async_db
from services.access_service.dependencies import require_admin
from services.access_service.models import (
    AllowlistEntry,
    ApprovalAction,
    ApprovalStatus,
    BlockedUser,
)
from services.access_service.schemas import (
    ApprovalActionResponse,
    ApprovalEntry,
    ApprovalListResponse,
    ApprovalRequest,
)
from services.access_service.supabase_admin import (
    AuthAdminError,
    SupabaseAuthAdmin,
    get_auth_admin,
)
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/admin/approvals", tags=["admin-approvals"])
logger = get_logger(__name__)


async def _allow(db: AsyncSession, email: str, approved_by: str | None) -> None:
    entry = await db.get(AllowlistEntry, email)
    if entry is None:
        db.add(AllowlistEntry(email=email, approved_by=approved_by))
    else:
        entry.approved_by = approved_by


async def _block(
    db: AsyncSession,
    email: str,
    *,
    reason: str | None,
    user_id: str | None,
    blocked_by: str | None,
) -> None:
    row = await db.get(BlockedUser, email)
    if row is None:
        db.add(
            BlockedUser(
                email=email, reason=reason, user_id=user_id, blocked_by=blocked_by
            )
        )
    else:
        row.reason = reason
        row.blocked_by = blocked_by
        if user_id:
            row.user_id = user_id


def _listed_at(item: ApprovalEntry) -> float:
    listed_at = as_utc(item.requested_at or item.allowed_at or item.blocked_at)
    return listed_at.timestamp() if listed_at else 0.0


@router.post("", response_model=ApprovalActionResponse)
async def set_approval(
    payload: ApprovalRequest,
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
    auth_admin: SupabaseAuthAdmin = Depends(get_auth_admin),
):
    """
    Apply an approval action. Every action is idempotent.

    - approve: add to the allow-list and lift any block
    - block: add to the block-list and remove from the allow-list
    - unblock: lift the block only; the email is not approved
    """
    email = payload.email
    admin_email = current_user.normalized_email or None

    if payload.action == ApprovalAction.APPROVE:
        await _allow(db, email, admin_email)
        await db.execute(delete(BlockedUser).where(BlockedUser.email == email))
    elif payload.action == ApprovalAction.BLOCK:
        await _block(
            db,
            email,
            reason=payload.reason,
            user_id=payload.user_id,
            blocked_by=admin_email,
        )
        await db.execute(delete(AllowlistEntry).where(AllowlistEntry.email == email))
    else:
        await db.execute(delete(BlockedUser).where(BlockedUser.email == email))

    await db.commit()

    logger.info(
        "Admin %s applied %s to %s",
        admin_email,
        payload.action.value,
        email,
    )

    sessions_revoked = None
    if payload.user_id:
        if payload.action == ApprovalAction.BLOCK:
            result = await auth_admin.ban_user(payload.user_id)
            sessions_revoked = result.ok
        else:
            result = await auth_admin.unban_user(payload.user_id)
        if not result.ok:
            # The table change already took effect; the gate enforces it on the next request
            logger.warning(
                "Auth ban state not updated for %s (%s): %s",
                email,
                payload.user_id,
                result.error,
            )

    return ApprovalActionResponse(
        email=email, action=payload.action, sessions_revoked=sessions_revoked
    )


@router.get("", response_model=ApprovalListResponse)
async def list_approvals(
    status_filter: ApprovalStatus = Query(ApprovalStatus.PENDING, alias="status"),
    limit: int = Query(200, ge=1, le=1000),
    page: int = Query(1, ge=1),
    _: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
    auth_admin: SupabaseAuthAdmin = Depends(get_auth_admin),
):
    """
    List approval entries, newest first.

    Pending entries are Supabase sign-ups within ``APPROVALS_LOOKBACK_DAYS``
    whose email is neither allow-listed nor blocked.
    """
    items: list[ApprovalEntry] = []

    allowed = (await db.execute(select(AllowlistEntry))).scalars().all()
    blocked = (await db.execute(select(BlockedUser))).scalars().all()

    if status_filter in (ApprovalStatus.ALLOWED, ApprovalStatus.ALL):
        items.extend(
            ApprovalEntry(email=row.email, status="allowed", allowed_at=row.created_at)
            for row in allowed
        )

    if status_filter in (ApprovalStatus.BLOCKED, ApprovalStatus.ALL):
        items.extend(
            ApprovalEntry(
                email=row.email,
                status="blocked",
                blocked_at=row.created_at,
                reason=row.reason,
            )
            for row in blocked
        )

    if status_filter in (ApprovalStatus.PENDING, ApprovalStatus.ALL):
        decided = {row.email for row in allowed} | {row.email for row in blocked}
        try:
            users = await auth_admin.list_recent_users(
                get_settings().APPROVALS_LOOKBACK_DAYS
            )
        except AuthAdminError:
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail="Could not load sign-ups from Supabase",
            )
        items.extend(
            ApprovalEntry(
                email=user.email,
                status="pending",
                user_id=user.id,
                requested_at=user.created_at,
            )
            for user in users
            if user.email not in decided
        )

    items.sort(key=_listed_at, reverse=True)

    start = (page - 1) * limit
    return ApprovalListResponse(
        items=items[start : start + limit],
        total=len(items),
        page=page,
        limit=limit,
    )

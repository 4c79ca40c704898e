"""
Supabase Auth admin calls made by the access service.

Provides async methods for:
- Signing out every session of the bearer of an access token
- Banning / unbanning a user by auth id so refresh tokens stop working
- Listing recent sign-ups for the pending approvals queue

Session and ban calls are best effort: they return an AuthAdminResult instead
of raising, so the caller decides what to do with a failure. Listing raises
AuthAdminError, since there is no useful partial answer.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, List, Optional

from libs.common.datetime_utils import as_utc, utc_now
from libs.common.logging import get_logger
from libs.common.supabase import get_supabase_admin_client
from supabase import Client

logger = get_logger(__name__)

# Long enough to be permanent; cleared again on unblock
BAN_DURATION = "876000h"

LIST_USERS_PER_PAGE = 200
LIST_USERS_MAX_PAGES = 10


@dataclass
class AuthAdminResult:
    ok: bool
    error: Optional[str] = None


@dataclass
class AuthUserSummary:
    id: str
    email: str
    created_at: Optional[datetime] = None


class AuthAdminError(Exception):
    """Raised when Supabase Auth cannot answer a read request."""


def _signed_up_at(user: Any) -> Optional[datetime]:
    value = getattr(user, "created_at", None) or getattr(user, "last_sign_in_at", None)
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return as_utc(value)


class SupabaseAuthAdmin:
    """Wraps the synchronous Supabase client's ``auth.admin`` API for async callers."""

    def __init__(self, client: Optional[Client] = None):
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_admin_client()
        return self._client

    async def _call(self, method: str, *args) -> AuthAdminResult:
        try:
            await asyncio.to_thread(getattr(self.client.auth.admin, method), *args)
        except Exception as e:
            logger.warning(
                "Supabase auth %s failed",
                method,
                extra={"extra_fields": {"error": str(e)}},
            )
            return AuthAdminResult(ok=False, error=str(e))
        return AuthAdminResult(ok=True)

    async def sign_out(self, access_token: str) -> AuthAdminResult:
        """Revoke every refresh token belonging to the holder of ``access_token``."""
        return await self._call("sign_out", access_token, "global")

    async def _set_ban(self, user_id: str, duration: str) -> AuthAdminResult:
        return await self._call("update_user_by_id", user_id, {"ban_duration": duration})

    async def ban_user(self, user_id: str) -> AuthAdminResult:
        return await self._set_ban(user_id, BAN_DURATION)

    async def unban_user(self, user_id: str) -> AuthAdminResult:
        return await self._set_ban(user_id, "none")

    async def list_recent_users(self, lookback_days: int) -> List[AuthUserSummary]:
        """
        Users with an email who signed up within ``lookback_days`` (all users
        when ``lookback_days`` is 0 or less), reading at most
        ``LIST_USERS_MAX_PAGES`` pages.
        """
        cutoff = utc_now() - timedelta(days=lookback_days) if lookback_days > 0 else None
        users: List[AuthUserSummary] = []

        try:
            admin = self.client.auth.admin
            for page in range(1, LIST_USERS_MAX_PAGES + 1):
                batch = await asyncio.to_thread(
                    admin.list_users, page=page, per_page=LIST_USERS_PER_PAGE
                )
                for user in batch:
                    email = (getattr(user, "email", None) or "").strip().lower()
                    if not email:
                        continue
                    created_at = _signed_up_at(user)
                    if cutoff and created_at and created_at < cutoff:
                        continue
                    users.append(
                        AuthUserSummary(id=str(user.id), email=email, created_at=created_at)
                    )
                if len(batch) < LIST_USERS_PER_PAGE:
                    break
        except Exception as e:
            logger.error(
                "Could not list Supabase users",
                extra={"extra_fields": {"error": str(e)}},
            )
            raise AuthAdminError(str(e)) from e

        return users


def get_auth_admin() -> SupabaseAuthAdmin:
    """FastAPI dependency returning a SupabaseAuthAdmin instance."""
    return SupabaseAuthAdmin()

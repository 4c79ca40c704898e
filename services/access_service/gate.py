"""
Approval gate: decides whether an authenticated identity may reach a
protected FuelFlow page or API route.

Evaluation order for a protected route:

    no email            -> unauthenticated
    on the block-list   -> blocked      (wins over admin and allow-list)
    admin route         -> admin_ok / forbidden   (admins table)
    customer route      -> approved / pending     (email_allowlist)

Admin membership does not imply customer approval: an admin who wants the
customer dashboard must also be on the allow-list.
"""

from dataclasses import dataclass
from typing import Optional, Protocol
from urllib.parse import urlencode

from libs.common.logging import get_logger
from services.access_service.models import (
    Admin,
    AllowlistEntry,
    BlockedUser,
    GateDecision,
    RouteKind,
)
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

ADMIN_PATHS = ("/admin-dashboard", "/admin")
CUSTOMER_PATHS = (
    "/client-dashboard",
    "/order",
    "/orders",
    "/invoices",
    "/contracts",
    "/documents",
)
# Never gated, even if a protected prefix would otherwise match
PUBLIC_PREFIXES = ("/api", "/_next", "/favicon", "/fonts", "/images")

LOGIN_PATH = "/login"
BLOCKED_PATH = "/blocked"
PENDING_PATH = "/pending"
ACCESS_ISSUE_PATH = "/access-issue"
FORBIDDEN_FALLBACK_PATH = "/client-dashboard"


class AccessLookupError(Exception):
    """Raised when an access-control table cannot be read."""


class AccessLookups(Protocol):
    async def is_blocked(self, email: str) -> bool: ...

    async def is_admin(self, email: str) -> bool: ...

    async def is_allowlisted(self, email: str) -> bool: ...


class SqlAccessLookups:
    """Set-membership lookups against the access-control tables."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _exists(self, model, email: str) -> bool:
        try:
            result = await self.db.execute(
                select(model.email).where(model.email == email)
            )
        except SQLAlchemyError as e:
            raise AccessLookupError(f"{model.__tablename__} lookup failed: {e}") from e
        return result.scalar_one_or_none() is not None

    async def is_blocked(self, email: str) -> bool:
        return await self._exists(BlockedUser, email)

    async def is_admin(self, email: str) -> bool:
        return await self._exists(Admin, email)

    async def is_allowlisted(self, email: str) -> bool:
        return await self._exists(AllowlistEntry, email)


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def _matches(path: str, prefixes: tuple[str, ...]) -> bool:
    return any(path == p or path.startswith(p + "/") for p in prefixes)


def classify_path(path: str) -> RouteKind:
    path = "/" + (path or "").split("?", 1)[0].strip("/")
    if path.startswith(PUBLIC_PREFIXES):
        return RouteKind.PUBLIC
    if _matches(path, ADMIN_PATHS):
        return RouteKind.ADMIN
    if _matches(path, CUSTOMER_PATHS):
        return RouteKind.CUSTOMER
    return RouteKind.PUBLIC


def redirect_for(decision: GateDecision, path: str) -> Optional[str]:
    """Where the page middleware should send a request that was not let through."""
    if decision == GateDecision.UNAUTHENTICATED:
        return f"{LOGIN_PATH}?{urlencode({'next': path})}"
    if decision == GateDecision.BLOCKED:
        return BLOCKED_PATH
    if decision == GateDecision.PENDING:
        return PENDING_PATH
    if decision == GateDecision.FORBIDDEN:
        return FORBIDDEN_FALLBACK_PATH
    if decision == GateDecision.ERROR:
        return ACCESS_ISSUE_PATH
    return None


@dataclass
class GateResult:
    decision: GateDecision
    route: RouteKind
    email: Optional[str] = None
    redirect: Optional[str] = None

    @property
    def allowed(self) -> bool:
        return self.decision.allowed


class ApprovalGate:
    """
    Pure decision function over the three access lookups.

    ``fail_open`` only affects customer routes: when a lookup fails the
    customer is let through instead of being sent to the access-issue page.
    Admin routes always fail closed.
    """

    def __init__(self, lookups: AccessLookups, *, fail_open: bool = False):
        self.lookups = lookups
        self.fail_open = fail_open

    async def decide(self, email: Optional[str], route: RouteKind) -> GateDecision:
        if route == RouteKind.PUBLIC:
            return GateDecision.PUBLIC

        email = normalize_email(email)
        if not email:
            return GateDecision.UNAUTHENTICATED

        try:
            if await self.lookups.is_blocked(email):
                return GateDecision.BLOCKED

            if route == RouteKind.ADMIN:
                if await self.lookups.is_admin(email):
                    return GateDecision.ADMIN_OK
                return GateDecision.FORBIDDEN

            if await self.lookups.is_allowlisted(email):
                return GateDecision.APPROVED
            return GateDecision.PENDING
        except AccessLookupError as e:
            logger.error(
                "Access lookup failed for %s on %s route: %s",
                email,
                route.value,
                e,
                extra={"extra_fields": {"fail_open": self.fail_open}},
            )
            if self.fail_open and route == RouteKind.CUSTOMER:
                return GateDecision.APPROVED
            return GateDecision.ERROR

    async def evaluate(self, email: Optional[str], path: str) -> GateResult:
        route = classify_path(path)
        decision = await self.decide(email, route)
        return GateResult(
            decision=decision,
            route=route,
            email=normalize_email(email) or None,
            redirect=redirect_for(decision, path),
        )

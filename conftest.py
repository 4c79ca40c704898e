import json
import os
import time
from typing import AsyncGenerator, Callable, Optional
from unittest.mock import AsyncMock

# Must be set before anything imports libs.common.config
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("STRIPE_WEBHOOK_SECRETS", "whsec_test_previous,whsec_test_current")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_fuelflow")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("INVOICE_SECRET", "invoice-test-secret")
os.environ.setdefault("ACCESS_FAIL_OPEN", "false")

import pytest
import pytest_asyncio
from dotenv import load_dotenv
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Optional local overrides, e.g. to point the suite at Postgres
env_test_path = os.path.join(os.path.dirname(__file__), ".env.test")
if os.path.exists(env_test_path):
    load_dotenv(env_test_path, override=True)

from libs.common.config import get_settings
from libs.db.base import Base
from libs.db.session import get_async_db

# Import all models so metadata includes every table
from services.access_service import models as _access_models  # noqa: F401
from services.billing_service import models as _billing_models  # noqa: F401

# Clear cached settings to reload with new env vars
get_settings.cache_clear()
settings = get_settings()

WEBHOOK_SECRET = settings.stripe_webhook_secrets[-1]


@pytest_asyncio.fixture
async def test_engine():
    """
    Fresh in-memory database per test.

    pysqlite's own transaction handling swallows SAVEPOINT, so BEGIN is
    emitted by SQLAlchemy instead.
    """
    engine = create_async_engine(
        settings.DATABASE_URL,
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _no_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Yield a session shared by the test body and the app under test."""
    session_factory = async_sessionmaker(
        bind=test_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )
    session = session_factory()
    try:
        yield session
    finally:
        await session.close()


# ---------------------------------------------------------------------------
# External service fakes
# ---------------------------------------------------------------------------


@pytest.fixture
def stripe_fake():
    """StripeClient stand-in; every call is an AsyncMock tests can inspect."""
    from services.billing_service.schemas.events import PaymentIntent
    from services.billing_service.stripe_client import (
        CreatedCheckoutSession,
        LineItem,
        StripeClient,
    )

    fake = AsyncMock(spec=StripeClient)
    fake.create_checkout_session.return_value = CreatedCheckoutSession(
        id="cs_test_created", url="https://checkout.stripe.test/c/cs_test_created"
    )
    fake.list_line_items.return_value = [
        LineItem(description="Fuel order - diesel", quantity=1, unit_amount=145000)
    ]
    # Echo back a succeeded intent for whatever id the session referenced
    fake.retrieve_payment_intent.side_effect = lambda pi_id: PaymentIntent(
        id=pi_id,
        amount=145000,
        amount_received=145000,
        currency="gbp",
        status="succeeded",
        receipt_email="customer@example.com",
    )
    return fake


@pytest.fixture
def notifier_fake():
    from services.billing_service.notifier import InvoiceNotifier, NotifierResult

    fake = AsyncMock(spec=InvoiceNotifier)
    fake.create_and_send.return_value = NotifierResult(
        ok=True, status_code=200, email_id="email_123"
    )
    return fake


@pytest.fixture
def auth_admin_fake():
    from services.access_service.supabase_admin import AuthAdminResult, SupabaseAuthAdmin

    fake = AsyncMock(spec=SupabaseAuthAdmin)
    fake.sign_out.return_value = AuthAdminResult(ok=True)
    fake.ban_user.return_value = AuthAdminResult(ok=True)
    fake.unban_user.return_value = AuthAdminResult(ok=True)
    fake.list_recent_users.return_value = []
    return fake


# ---------------------------------------------------------------------------
# App clients
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def billing_client(
    db_session, stripe_fake, notifier_fake
) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient for the billing app with DB and provider dependencies overridden."""
    from services.billing_service.app.main import app
    from services.billing_service.notifier import get_invoice_notifier
    from services.billing_service.stripe_client import get_stripe_client

    app.dependency_overrides[get_async_db] = lambda: db_session
    app.dependency_overrides[get_stripe_client] = lambda: stripe_fake
    app.dependency_overrides[get_invoice_notifier] = lambda: notifier_fake

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def access_client(
    db_session, auth_admin_fake
) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient for the access app with DB and Supabase admin overridden."""
    from services.access_service.app.main import app
    from services.access_service.supabase_admin import get_auth_admin

    app.dependency_overrides[get_async_db] = lambda: db_session
    app.dependency_overrides[get_auth_admin] = lambda: auth_admin_fake

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Request helpers
# ---------------------------------------------------------------------------


def make_access_token(
    email: Optional[str],
    *,
    sub: str = "user-123",
    role: str = "authenticated",
    expires_in: int = 3600,
) -> str:
    """Sign a token the way Supabase Auth does (HS256 with the project JWT secret)."""
    claims = {
        "sub": sub,
        "role": role,
        "aud": "authenticated",
        "exp": int(time.time()) + expires_in,
    }
    if email is not None:
        claims["email"] = email
    return jwt.encode(claims, settings.SUPABASE_JWT_SECRET, algorithm="HS256")


@pytest.fixture
def auth_headers() -> Callable[..., dict]:
    """Return a builder for Authorization headers carrying a signed access token."""

    def _build(email: Optional[str] = "customer@example.com", **claims) -> dict:
        return {"Authorization": f"Bearer {make_access_token(email, **claims)}"}

    return _build


@pytest.fixture
def signed_webhook() -> Callable[..., tuple[bytes, dict]]:
    """Return a builder producing (body, headers) signed like a Stripe delivery."""
    from services.billing_service.signature import build_signature_header

    def _build(
        payload: dict, *, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None
    ) -> tuple[bytes, dict]:
        body = json.dumps(payload).encode("utf-8")
        headers = {
            "Stripe-Signature": build_signature_header(secret, body, timestamp),
            "Content-Type": "application/json",
        }
        return body, headers

    return _build

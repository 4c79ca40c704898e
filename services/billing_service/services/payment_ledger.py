"""Payment ledger: best-effort reconciliation rows keyed on payment intent id."""

import uuid
from dataclasses import dataclass, field
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.billing_service.models import Payment
from sqlalchemy import func, insert
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

# Dialect inserts that support ON CONFLICT DO UPDATE
_UPSERT_INSERTS = {"postgresql": postgresql.insert, "sqlite": sqlite.insert}


@dataclass
class PaymentRecord:
    amount: int
    currency: str
    status: str
    pi_id: Optional[str] = None
    email: Optional[str] = None
    order_id: Optional[uuid.UUID] = None
    cs_id: Optional[str] = None
    meta: dict = field(default_factory=dict)


@dataclass
class LedgerResult:
    ok: bool
    created: bool = False
    error: Optional[str] = None


def _upsert_statement(dialect: str, values: dict, has_meta: bool):
    stmt = _UPSERT_INSERTS[dialect](Payment).values(**values)
    excluded = stmt.excluded
    set_ = {
        "amount": excluded.amount,
        "currency": excluded.currency,
        "status": excluded.status,
        # A later event without linkage must not erase what an earlier one found
        "email": func.coalesce(excluded.email, Payment.email),
        "order_id": func.coalesce(excluded.order_id, Payment.order_id),
        "cs_id": func.coalesce(excluded.cs_id, Payment.cs_id),
        "updated_at": excluded.updated_at,
    }
    if has_meta:
        set_["meta"] = excluded.meta
    return stmt.on_conflict_do_update(index_elements=[Payment.pi_id], set_=set_)


async def upsert_payment(db: AsyncSession, record: PaymentRecord) -> LedgerResult:
    """
    Insert or update the ledger row for ``record.pi_id`` and commit.

    The write is a single ``INSERT ... ON CONFLICT (pi_id) DO UPDATE`` so the
    checkout and payment intent events for one intent can land concurrently.
    Without a payment intent id the row is always inserted. Never raises;
    a failure is rolled back and reported in the result.
    """
    now = utc_now()
    new_id = uuid.uuid4()
    values = {
        "id": new_id,
        "pi_id": record.pi_id,
        "amount": record.amount,
        "currency": record.currency.upper(),
        "status": record.status,
        "email": record.email.lower() if record.email else None,
        "order_id": record.order_id,
        "cs_id": record.cs_id,
        "created_at": now,
        "updated_at": now,
    }
    if record.meta:
        values["meta"] = record.meta

    try:
        if record.pi_id:
            stmt = _upsert_statement(db.get_bind().dialect.name, values, bool(record.meta))
        else:
            stmt = insert(Payment).values(**values)
        payment = await db.scalar(
            stmt.returning(Payment), execution_options={"populate_existing": True}
        )
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.error(
            "Payment ledger upsert failed for %s: %s",
            record.pi_id or "<no intent>",
            e,
            exc_info=True,
        )
        return LedgerResult(ok=False, error=str(e))

    return LedgerResult(ok=True, created=payment.id == new_id)

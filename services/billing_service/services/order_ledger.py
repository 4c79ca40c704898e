"""Order ledger writes performed by the webhook reconciler."""

import uuid
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.billing_service.models import Order, OrderStatus
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


class OrderUpdateError(Exception):
    """The order row could not be written; the delivery should be retried."""


def parse_order_id(reference: Optional[str]) -> Optional[uuid.UUID]:
    if not reference:
        return None
    try:
        return uuid.UUID(str(reference))
    except ValueError:
        return None


async def mark_order_paid(
    db: AsyncSession,
    order_id: uuid.UUID,
    *,
    session_id: Optional[str] = None,
    payment_intent_id: Optional[str] = None,
) -> bool:
    """
    Set ``status = paid`` and stamp ``paid_at`` in the caller's transaction.

    Last write wins: a later event for the same order re-stamps it. Pricing
    and delivery columns are never touched. Returns False if no such order.
    """
    values = {"status": OrderStatus.PAID, "paid_at": utc_now()}
    if session_id:
        values["stripe_session_id"] = session_id
    if payment_intent_id:
        values["stripe_payment_intent_id"] = payment_intent_id

    try:
        result = await db.execute(
            update(Order)
            .where(Order.id == order_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
    except SQLAlchemyError as e:
        raise OrderUpdateError(f"Order {order_id} update failed: {e}") from e

    return result.rowcount > 0

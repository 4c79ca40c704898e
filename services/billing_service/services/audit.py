"""Append-only audit rows for webhook processing."""

from typing import Optional

from libs.common.logging import get_logger
from services.billing_service.models import AuditEvent, WebhookLog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


async def record_audit(
    db: AsyncSession,
    event_type: AuditEvent,
    *,
    event_id: Optional[str] = None,
    order_id: Optional[str] = None,
    status: Optional[str] = None,
    error: Optional[str] = None,
) -> bool:
    """Write one webhook_logs row in its own commit. Returns False if it could not."""
    try:
        db.add(
            WebhookLog(
                event_type=event_type.value,
                event_id=event_id,
                order_id=str(order_id) if order_id else None,
                status=status,
                error=error,
            )
        )
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(
            "Audit row %s for event %s not written: %s", event_type.value, event_id, e
        )
        return False
    return True

"""Event store: one row per Stripe event id, never updated or deleted."""

from libs.common.logging import get_logger
from services.billing_service.models import WebhookEvent
from sqlalchemy import insert, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


class EventStoreError(Exception):
    """The event store could not answer; duplicate status is unknown."""


class WebhookEventStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def has(self, event_id: str) -> bool:
        try:
            result = await self.db.execute(
                select(WebhookEvent.id).where(WebhookEvent.id == event_id)
            )
        except SQLAlchemyError as e:
            raise EventStoreError(f"Event lookup failed for {event_id}: {e}") from e
        return result.scalar_one_or_none() is not None

    async def insert(self, event_id: str, event_type: str, raw: dict) -> bool:
        """
        Record ``event_id`` in the caller's transaction.

        Returns False when the primary key rejects the row, i.e. the event
        has been seen before (including a concurrent delivery that committed
        first). The row becomes durable when the caller commits.
        """
        try:
            async with self.db.begin_nested():
                await self.db.execute(
                    insert(WebhookEvent).values(id=event_id, type=event_type, raw=raw)
                )
        except IntegrityError:
            logger.info("Event %s already recorded", event_id)
            return False
        except SQLAlchemyError as e:
            raise EventStoreError(f"Event insert failed for {event_id}: {e}") from e
        return True

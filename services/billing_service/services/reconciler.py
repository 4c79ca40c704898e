"""
Webhook reconciler: turns a verified Stripe event into order, payment and
invoice side effects.

The event row and the order transition share one transaction, so a failed
order write rolls the event back too and Stripe's redelivery is processed
afresh. Everything after that commit (payment ledger, invoice) is best
effort and only ever audited.
"""

import uuid
from dataclasses import dataclass
from typing import Optional

from libs.common.config import get_settings
from libs.common.logging import get_logger
from services.billing_service.models import AuditEvent
from services.billing_service.notifier import (
    InvoiceCustomer,
    InvoiceItem,
    InvoiceNotifier,
    InvoiceRequest,
    NotifierResult,
)
from services.billing_service.schemas.events import (
    CheckoutSession,
    CheckoutSessionCompleted,
    PaymentIntent,
    PaymentIntentSucceeded,
    ProviderEvent,
    UnknownEvent,
)
from services.billing_service.services.audit import record_audit
from services.billing_service.services.event_store import (
    EventStoreError,
    WebhookEventStore,
)
from services.billing_service.services.order_ledger import (
    OrderUpdateError,
    mark_order_paid,
    parse_order_id,
)
from services.billing_service.services.payment_ledger import (
    LedgerResult,
    PaymentRecord,
    upsert_payment,
)
from services.billing_service.stripe_client import StripeClient, StripeError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


@dataclass
class ReconcileOutcome:
    event_id: str
    duplicate: bool = False
    ignored: bool = False
    order_reference: Optional[str] = None
    order_updated: bool = False
    ledger: Optional[LedgerResult] = None
    invoice: Optional[NotifierResult] = None

    @property
    def orphan(self) -> bool:
        return not (self.duplicate or self.ignored or self.order_updated)

    def as_response(self) -> dict:
        body = {"received": True}
        if self.duplicate:
            body["duplicate"] = True
        if self.ignored:
            body["ignored"] = True
        return body


@dataclass
class _Resolution:
    order_reference: Optional[str]
    session: Optional[CheckoutSession] = None
    payment_intent: Optional[PaymentIntent] = None
    intent_fetch_error: Optional[str] = None


def _major_units(amount: int) -> float:
    return round(amount / 100, 2)


class WebhookReconciler:
    def __init__(
        self,
        db: AsyncSession,
        stripe: StripeClient,
        notifier: InvoiceNotifier,
    ):
        self.db = db
        self.stripe = stripe
        self.notifier = notifier
        self.default_currency = get_settings().DEFAULT_CURRENCY

    async def reconcile(self, event: ProviderEvent, raw: dict) -> ReconcileOutcome:
        """
        Process one verified event.

        Raises EventStoreError when duplicate status cannot be determined and
        OrderUpdateError when the order transition could not be committed;
        both mean the delivery should be retried.
        """
        outcome = ReconcileOutcome(event_id=event.id)
        store = WebhookEventStore(self.db)

        if not await store.insert(event.id, event.type, raw):
            await self.db.rollback()
            logger.info("Skipping redelivered event %s (%s)", event.id, event.type)
            outcome.duplicate = True
            return outcome

        if isinstance(event, UnknownEvent):
            await self._commit_event_only(event)
            outcome.ignored = True
            return outcome

        resolution = await self._resolve(event)
        outcome.order_reference = resolution.order_reference
        order_id = parse_order_id(resolution.order_reference)

        try:
            if order_id is not None:
                outcome.order_updated = await mark_order_paid(
                    self.db,
                    order_id,
                    session_id=resolution.session.id if resolution.session else None,
                    payment_intent_id=(
                        resolution.payment_intent.id if resolution.payment_intent else None
                    ),
                )
            await self.db.commit()
        except (OrderUpdateError, SQLAlchemyError) as e:
            await self.db.rollback()
            logger.error(
                "Order transition failed for event %s (order %s): %s",
                event.id,
                resolution.order_reference,
                e,
            )
            await record_audit(
                self.db,
                AuditEvent.HANDLER_ERROR,
                event_id=event.id,
                order_id=resolution.order_reference,
                error=str(e),
            )
            if isinstance(e, OrderUpdateError):
                raise
            raise OrderUpdateError(f"Commit failed for event {event.id}: {e}") from e

        await self._audit_resolution(event, resolution, outcome)

        outcome.ledger = await upsert_payment(
            self.db, self._payment_record(resolution, order_id)
        )
        if not outcome.ledger.ok:
            await record_audit(
                self.db,
                AuditEvent.PAYMENT_LEDGER_FAILED,
                event_id=event.id,
                order_id=resolution.order_reference,
                error=outcome.ledger.error,
            )

        outcome.invoice = await self.notifier.create_and_send(
            await self._invoice_request(resolution)
        )
        await record_audit(
            self.db,
            AuditEvent.INVOICE_SENT if outcome.invoice.ok else AuditEvent.INVOICE_FAILED,
            event_id=event.id,
            order_id=resolution.order_reference,
            status="paid" if outcome.order_updated else None,
            error=outcome.invoice.error,
        )
        return outcome

    async def _commit_event_only(self, event: UnknownEvent) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise EventStoreError(f"Could not record event {event.id}: {e}") from e
        logger.debug("Ignoring %s event %s", event.type, event.id)

    async def _resolve(
        self, event: CheckoutSessionCompleted | PaymentIntentSucceeded
    ) -> _Resolution:
        """Find the order reference, preferring the event's own metadata."""
        if isinstance(event, PaymentIntentSucceeded):
            intent = event.payment_intent
            return _Resolution(order_reference=intent.order_reference, payment_intent=intent)

        session = event.session
        resolution = _Resolution(order_reference=session.order_reference, session=session)

        if isinstance(session.payment_intent, PaymentIntent):
            resolution.payment_intent = session.payment_intent
        elif session.payment_intent:
            try:
                resolution.payment_intent = await self.stripe.retrieve_payment_intent(
                    session.payment_intent
                )
            except StripeError as e:
                logger.warning(
                    "Could not fetch payment intent %s for session %s: %s",
                    session.payment_intent,
                    session.id,
                    e.message,
                )
                resolution.intent_fetch_error = e.message

        if not resolution.order_reference and resolution.payment_intent:
            resolution.order_reference = resolution.payment_intent.order_reference
        return resolution

    async def _audit_resolution(
        self, event: ProviderEvent, resolution: _Resolution, outcome: ReconcileOutcome
    ) -> None:
        await record_audit(
            self.db,
            AuditEvent.RECEIVED,
            event_id=event.id,
            order_id=resolution.order_reference,
            status=event.type,
        )

        if resolution.intent_fetch_error:
            await record_audit(
                self.db,
                AuditEvent.INTENT_FETCH_FAILED,
                event_id=event.id,
                order_id=resolution.order_reference,
                error=resolution.intent_fetch_error,
            )

        if outcome.order_updated:
            logger.info("Order %s marked paid by %s", resolution.order_reference, event.id)
            await record_audit(
                self.db,
                AuditEvent.ORDER_PAID,
                event_id=event.id,
                order_id=resolution.order_reference,
                status="paid",
            )
            return

        reason = (
            "order not found"
            if resolution.order_reference
            else "no order reference on event"
        )
        logger.warning(
            "Orphan %s event %s: %s",
            event.type,
            event.id,
            reason,
            extra={"extra_fields": {"order_reference": resolution.order_reference}},
        )
        await record_audit(
            self.db,
            AuditEvent.ORPHAN,
            event_id=event.id,
            order_id=resolution.order_reference,
            status="needs_review",
            error=reason,
        )

    def _payment_record(
        self, resolution: _Resolution, order_id: Optional[uuid.UUID]
    ) -> PaymentRecord:
        session = resolution.session
        intent = resolution.payment_intent

        if intent is not None:
            return PaymentRecord(
                pi_id=intent.id,
                amount=intent.settled_amount,
                currency=intent.currency or self.default_currency,
                status=intent.status or "succeeded",
                email=intent.customer_email or (session.email if session else None),
                order_id=order_id,
                cs_id=session.id if session else None,
                meta=dict(intent.metadata),
            )

        # Intent could not be fetched; record what the session itself says
        if session.payment_status == "paid":
            status = "succeeded"
        else:
            status = session.payment_status or "unknown"
        return PaymentRecord(
            pi_id=session.payment_intent_id,
            amount=session.amount_total or 0,
            currency=session.currency or self.default_currency,
            status=status,
            email=session.email,
            order_id=order_id,
            cs_id=session.id,
            meta=dict(session.metadata),
        )

    async def _invoice_request(self, resolution: _Resolution) -> InvoiceRequest:
        session = resolution.session

        if session is None:
            intent = resolution.payment_intent
            return InvoiceRequest(
                customer=InvoiceCustomer(
                    name=intent.customer_name or "Customer",
                    email=intent.customer_email or "",
                ),
                items=[
                    InvoiceItem(
                        description=intent.meta("description") or "Payment",
                        quantity=1,
                        unit_price=_major_units(intent.settled_amount),
                    )
                ],
                currency=(intent.currency or self.default_currency).upper(),
            )

        try:
            line_items = await self.stripe.list_line_items(session.id)
            items = [
                InvoiceItem(
                    description=line.description,
                    quantity=line.quantity,
                    unit_price=_major_units(line.unit_amount),
                )
                for line in line_items
            ]
        except StripeError as e:
            logger.warning(
                "Line items unavailable for session %s, invoicing the total: %s",
                session.id,
                e.message,
            )
            items = [
                InvoiceItem(
                    description=session.meta("product") or "Fuel order",
                    quantity=1,
                    unit_price=_major_units(session.amount_total or 0),
                )
            ]

        return InvoiceRequest(
            customer=InvoiceCustomer(
                name=session.customer_name or "Customer",
                email=session.email or "",
            ),
            items=items,
            currency=(session.currency or self.default_currency).upper(),
        )

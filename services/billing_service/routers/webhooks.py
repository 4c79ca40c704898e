"""Stripe webhook endpoint (no auth; verified by the Stripe-Signature header)."""

from fastapi import APIRouter, Depends, HTTPException, Request, status
from libs.common.config import get_settings
from libs.common.logging import get_logger
from libs.db.session import get_async_db
from services.billing_service.notifier import InvoiceNotifier, get_invoice_notifier
from services.billing_service.schemas import EventPayloadError, parse_event
from services.billing_service.services.event_store import EventStoreError
from services.billing_service.services.order_ledger import OrderUpdateError
from services.billing_service.services.reconciler import WebhookReconciler
from services.billing_service.signature import (
    SignatureVerificationError,
    verify_stripe_signature,
)
from services.billing_service.stripe_client import StripeClient, get_stripe_client
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/stripe", tags=["webhooks"])
logger = get_logger(__name__)


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    db: AsyncSession = Depends(get_async_db),
    stripe: StripeClient = Depends(get_stripe_client),
    notifier: InvoiceNotifier = Depends(get_invoice_notifier),
):
    """
    Reconcile a Stripe event with the order and payment ledgers.

    200 for processed, duplicate and ignored events alike. 400 when the
    signature or body is bad, 500 when the event could not be recorded or
    the order could not be marked paid (Stripe will redeliver).
    """
    settings = get_settings()
    raw = await request.body()

    try:
        verify_stripe_signature(
            raw,
            request.headers.get("stripe-signature"),
            settings.stripe_webhook_secrets,
            tolerance=settings.STRIPE_WEBHOOK_TOLERANCE_SECONDS,
        )
    except SignatureVerificationError as e:
        logger.warning("Rejected Stripe webhook: %s", e)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid signature"
        )

    try:
        event, payload = parse_event(raw)
    except EventPayloadError as e:
        logger.warning("Signed webhook body could not be parsed: %s", e)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Malformed event payload"
        )

    reconciler = WebhookReconciler(db, stripe, notifier)
    try:
        outcome = await reconciler.reconcile(event, payload)
    except EventStoreError as e:
        logger.error("Event store unavailable for %s: %s", event.id, e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Event could not be recorded",
        )
    except OrderUpdateError as e:
        logger.error("Order update failed for %s: %s", event.id, e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Order could not be updated",
        )

    return outcome.as_response()

"""Integration tests for the Stripe webhook reconciler endpoint."""

from unittest.mock import AsyncMock, patch

import pytest
from services.billing_service.models import (
    Order,
    OrderStatus,
    Payment,
    WebhookEvent,
    WebhookLog,
)
from services.billing_service.notifier import NotifierResult
from services.billing_service.services.order_ledger import OrderUpdateError
from services.billing_service.stripe_client import StripeError
from sqlalchemy import func, select
from tests.factories import OrderFactory, StripeEventFactory

WEBHOOK_URL = "/stripe/webhook"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _count(db, model) -> int:
    return await db.scalar(select(func.count()).select_from(model))


async def _audit_types(db) -> list[str]:
    result = await db.execute(select(WebhookLog.event_type))
    return sorted(result.scalars().all())


async def _make_order(db, **overrides) -> Order:
    order = OrderFactory.create(**overrides)
    db.add(order)
    await db.commit()
    return order


# ---------------------------------------------------------------------------
# Happy path and idempotency
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_checkout_completed_marks_order_paid(
    billing_client, db_session, signed_webhook, stripe_fake, notifier_fake
):
    """A completed checkout marks the order paid, writes the ledger and invoices once."""
    order = await _make_order(db_session)
    payload = StripeEventFactory.checkout_session_completed(order_id=order.id)
    pi_id = payload["data"]["object"]["payment_intent"]
    body, headers = signed_webhook(payload)

    response = await billing_client.post(WEBHOOK_URL, content=body, headers=headers)

    assert response.status_code == 200, response.text
    assert response.json() == {"received": True}

    await db_session.refresh(order)
    assert order.status == OrderStatus.PAID
    assert order.paid_at is not None
    assert order.stripe_payment_intent_id == pi_id

    payment = (await db_session.execute(select(Payment))).scalar_one()
    assert payment.pi_id == pi_id
    assert payment.status == "succeeded"
    assert payment.amount == 145000
    assert payment.currency == "GBP"
    assert payment.order_id == order.id

    assert await db_session.get(WebhookEvent, payload["id"]) is not None
    stripe_fake.retrieve_payment_intent.assert_awaited_once_with(pi_id)
    notifier_fake.create_and_send.assert_awaited_once()
    invoice = notifier_fake.create_and_send.await_args.args[0]
    assert invoice.customer.email == "customer@example.com"
    assert invoice.currency == "GBP"
    assert invoice.items[0].unit_price == 1450.0

    assert await _audit_types(db_session) == [
        "invoice_sent",
        "order_updated_to_paid",
        "received",
    ]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_redelivery_is_a_no_op(
    billing_client, db_session, signed_webhook, notifier_fake
):
    """Replaying an event id writes nothing new and does not notify again."""
    order = await _make_order(db_session)
    body, headers = signed_webhook(
        StripeEventFactory.checkout_session_completed(order_id=order.id)
    )

    first = await billing_client.post(WEBHOOK_URL, content=body, headers=headers)
    assert first.status_code == 200
    logs_after_first = await _count(db_session, WebhookLog)

    second = await billing_client.post(WEBHOOK_URL, content=body, headers=headers)

    assert second.status_code == 200
    assert second.json() == {"received": True, "duplicate": True}
    assert await _count(db_session, WebhookEvent) == 1
    assert await _count(db_session, Payment) == 1
    assert await _count(db_session, WebhookLog) == logs_after_first
    notifier_fake.create_and_send.assert_awaited_once()


@pytest.mark.asyncio
@pytest.mark.integration
async def test_payment_intent_succeeded_reconciles_without_session(
    billing_client, db_session, signed_webhook, stripe_fake, notifier_fake
):
    order = await _make_order(db_session)
    payload = StripeEventFactory.payment_intent_succeeded(
        order_id=order.id, amount=4000, amount_received=4000
    )
    body, headers = signed_webhook(payload)

    response = await billing_client.post(WEBHOOK_URL, content=body, headers=headers)

    assert response.status_code == 200
    await db_session.refresh(order)
    assert order.status == OrderStatus.PAID

    payment = (await db_session.execute(select(Payment))).scalar_one()
    assert payment.pi_id == payload["data"]["object"]["id"]
    assert payment.amount == 4000
    assert payment.cs_id is None

    stripe_fake.retrieve_payment_intent.assert_not_awaited()
    stripe_fake.list_line_items.assert_not_awaited()
    invoice = notifier_fake.create_and_send.await_args.args[0]
    assert [(i.description, i.quantity, i.unit_price) for i in invoice.items] == [
        ("Payment", 1, 40.0)
    ]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_paid_order_total_survives_later_events(
    billing_client, db_session, signed_webhook
):
    """A second, different event for a paid order never touches its price or quantity."""
    order = await _make_order(db_session, litres=2000, unit_price_pence=140)
    for payload in (
        StripeEventFactory.checkout_session_completed(order_id=order.id),
        StripeEventFactory.payment_intent_succeeded(order_id=order.id, amount=1),
    ):
        body, headers = signed_webhook(payload)
        response = await billing_client.post(WEBHOOK_URL, content=body, headers=headers)
        assert response.status_code == 200

    await db_session.refresh(order)
    assert order.status == OrderStatus.PAID
    assert order.total_pence == 280000
    assert order.litres == 2000
    assert order.unit_price_pence == 140


@pytest.mark.asyncio
@pytest.mark.integration
async def test_order_reference_recovered_from_payment_intent(
    billing_client, db_session, signed_webhook, stripe_fake
):
    """Session metadata is empty, the fetched payment intent carries the order id."""
    from services.billing_service.schemas.events import PaymentIntent

    order = await _make_order(db_session)
    stripe_fake.retrieve_payment_intent.side_effect = None
    stripe_fake.retrieve_payment_intent.return_value = PaymentIntent(
        id="pi_linked",
        amount=145000,
        currency="gbp",
        status="succeeded",
        metadata={"order_id": str(order.id)},
    )
    body, headers = signed_webhook(
        StripeEventFactory.checkout_session_completed(metadata={}, payment_intent="pi_linked")
    )

    response = await billing_client.post(WEBHOOK_URL, content=body, headers=headers)

    assert response.status_code == 200
    await db_session.refresh(order)
    assert order.status == OrderStatus.PAID


# ---------------------------------------------------------------------------
# Orphans and ignored events
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_event_without_order_reference_is_orphan(
    billing_client, db_session, signed_webhook
):
    order = await _make_order(db_session)
    body, headers = signed_webhook(
        StripeEventFactory.checkout_session_completed(metadata={})
    )

    response = await billing_client.post(WEBHOOK_URL, content=body, headers=headers)

    assert response.status_code == 200
    assert response.json() == {"received": True}
    await db_session.refresh(order)
    assert order.status == OrderStatus.ORDERED

    orphan = (
        await db_session.execute(
            select(WebhookLog).where(WebhookLog.event_type == "orphan_event")
        )
    ).scalar_one()
    assert orphan.status == "needs_review"
    assert orphan.error == "no order reference on event"


@pytest.mark.asyncio
@pytest.mark.integration
@pytest.mark.parametrize("reference", ["00000000-0000-0000-0000-000000000000", "ORD-1234"])
async def test_unknown_order_reference_is_orphan(
    billing_client, db_session, signed_webhook, reference
):
    body, headers = signed_webhook(
        StripeEventFactory.checkout_session_completed(metadata={"order_id": reference})
    )

    response = await billing_client.post(WEBHOOK_URL, content=body, headers=headers)

    assert response.status_code == 200
    orphan = (
        await db_session.execute(
            select(WebhookLog).where(WebhookLog.event_type == "orphan_event")
        )
    ).scalar_one()
    assert orphan.order_id == reference
    assert orphan.error == "order not found"
    # The event is still recorded so a redelivery is a duplicate
    assert await _count(db_session, WebhookEvent) == 1


@pytest.mark.asyncio
@pytest.mark.integration
async def test_unknown_event_type_is_acknowledged_and_ignored(
    billing_client, db_session, signed_webhook, notifier_fake
):
    order = await _make_order(db_session)
    payload = StripeEventFactory.other("charge.refunded")
    body, headers = signed_webhook(payload)

    response = await billing_client.post(WEBHOOK_URL, content=body, headers=headers)

    assert response.status_code == 200
    assert response.json() == {"received": True, "ignored": True}
    await db_session.refresh(order)
    assert order.status == OrderStatus.ORDERED
    assert await db_session.get(WebhookEvent, payload["id"]) is not None
    assert await _count(db_session, Payment) == 0
    notifier_fake.create_and_send.assert_not_awaited()


# ---------------------------------------------------------------------------
# Rejections
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_invalid_signature_writes_nothing(
    billing_client, db_session, signed_webhook
):
    order = await _make_order(db_session)
    body, headers = signed_webhook(
        StripeEventFactory.checkout_session_completed(order_id=order.id),
        secret="whsec_not_ours",
    )

    response = await billing_client.post(WEBHOOK_URL, content=body, headers=headers)

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid signature"
    assert await _count(db_session, WebhookEvent) == 0
    assert await _count(db_session, WebhookLog) == 0
    await db_session.refresh(order)
    assert order.status == OrderStatus.ORDERED


@pytest.mark.asyncio
@pytest.mark.integration
async def test_missing_signature_header_is_rejected(billing_client, db_session):
    response = await billing_client.post(
        WEBHOOK_URL, content=b'{"id": "evt_1", "type": "x"}'
    )

    assert response.status_code == 400
    assert await _count(db_session, WebhookEvent) == 0


@pytest.mark.asyncio
@pytest.mark.integration
async def test_previous_secret_still_verifies(billing_client, signed_webhook):
    body, headers = signed_webhook(
        StripeEventFactory.other(), secret="whsec_test_previous"
    )

    response = await billing_client.post(WEBHOOK_URL, content=body, headers=headers)

    assert response.status_code == 200


@pytest.mark.asyncio
@pytest.mark.integration
async def test_stale_signature_is_rejected(billing_client, signed_webhook):
    body, headers = signed_webhook(StripeEventFactory.other(), timestamp=1_000_000_000)

    response = await billing_client.post(WEBHOOK_URL, content=body, headers=headers)

    assert response.status_code == 400


@pytest.mark.asyncio
@pytest.mark.integration
async def test_signed_but_malformed_body_is_rejected(billing_client, db_session, signed_webhook):
    body, headers = signed_webhook({"object": "event"})

    response = await billing_client.post(WEBHOOK_URL, content=body, headers=headers)

    assert response.status_code == 400
    assert response.json()["detail"] == "Malformed event payload"
    assert await _count(db_session, WebhookEvent) == 0


@pytest.mark.asyncio
@pytest.mark.integration
async def test_signed_event_with_list_type_is_rejected(billing_client, db_session, signed_webhook):
    payload = StripeEventFactory.other()
    payload["type"] = ["checkout.session.completed"]
    body, headers = signed_webhook(payload)

    response = await billing_client.post(WEBHOOK_URL, content=body, headers=headers)

    assert response.status_code == 400
    assert await _count(db_session, WebhookEvent) == 0


# ---------------------------------------------------------------------------
# Failure handling
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_order_update_failure_rolls_back_event_for_retry(
    billing_client, db_session, signed_webhook, notifier_fake
):
    """The event row is not kept when the order write fails, so the retry is processed."""
    order = await _make_order(db_session)
    payload = StripeEventFactory.checkout_session_completed(order_id=order.id)
    body, headers = signed_webhook(payload)

    with patch(
        "services.billing_service.services.reconciler.mark_order_paid",
        new_callable=AsyncMock,
        side_effect=OrderUpdateError("deadlock detected"),
    ):
        failed = await billing_client.post(WEBHOOK_URL, content=body, headers=headers)

    assert failed.status_code == 500
    assert await db_session.get(WebhookEvent, payload["id"]) is None
    assert await _audit_types(db_session) == ["handler_error"]
    notifier_fake.create_and_send.assert_not_awaited()

    retried = await billing_client.post(WEBHOOK_URL, content=body, headers=headers)

    assert retried.status_code == 200
    assert retried.json() == {"received": True}
    await db_session.refresh(order)
    assert order.status == OrderStatus.PAID
    notifier_fake.create_and_send.assert_awaited_once()


@pytest.mark.asyncio
@pytest.mark.integration
async def test_intent_fetch_failure_is_audited_not_fatal(
    billing_client, db_session, signed_webhook, stripe_fake
):
    order = await _make_order(db_session)
    stripe_fake.retrieve_payment_intent.side_effect = StripeError("Stripe unavailable")
    payload = StripeEventFactory.checkout_session_completed(order_id=order.id)
    body, headers = signed_webhook(payload)

    response = await billing_client.post(WEBHOOK_URL, content=body, headers=headers)

    assert response.status_code == 200
    await db_session.refresh(order)
    assert order.status == OrderStatus.PAID
    assert "payment_intent_fetch_failed" in await _audit_types(db_session)

    # Ledger falls back to what the session itself reported
    payment = (await db_session.execute(select(Payment))).scalar_one()
    assert payment.pi_id == payload["data"]["object"]["payment_intent"]
    assert payment.status == "succeeded"
    assert payment.cs_id == payload["data"]["object"]["id"]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_ledger_failure_still_acknowledges(
    billing_client, db_session, signed_webhook, notifier_fake
):
    from services.billing_service.services.payment_ledger import LedgerResult

    order = await _make_order(db_session)
    body, headers = signed_webhook(
        StripeEventFactory.checkout_session_completed(order_id=order.id)
    )

    with patch(
        "services.billing_service.services.reconciler.upsert_payment",
        new_callable=AsyncMock,
        return_value=LedgerResult(ok=False, error="payments table missing"),
    ):
        response = await billing_client.post(WEBHOOK_URL, content=body, headers=headers)

    assert response.status_code == 200
    await db_session.refresh(order)
    assert order.status == OrderStatus.PAID
    assert "payment_ledger_failed" in await _audit_types(db_session)
    notifier_fake.create_and_send.assert_awaited_once()


@pytest.mark.asyncio
@pytest.mark.integration
async def test_notifier_failure_still_acknowledges(
    billing_client, db_session, signed_webhook, notifier_fake
):
    notifier_fake.create_and_send.return_value = NotifierResult(
        ok=False, error="Invoice route error: 502", status_code=502
    )
    order = await _make_order(db_session)
    body, headers = signed_webhook(
        StripeEventFactory.checkout_session_completed(order_id=order.id)
    )

    response = await billing_client.post(WEBHOOK_URL, content=body, headers=headers)

    assert response.status_code == 200
    failed = (
        await db_session.execute(
            select(WebhookLog).where(WebhookLog.event_type == "invoice_failed")
        )
    ).scalar_one()
    assert failed.error == "Invoice route error: 502"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_line_item_failure_invoices_the_session_total(
    billing_client, db_session, signed_webhook, stripe_fake, notifier_fake
):
    stripe_fake.list_line_items.side_effect = StripeError("rate limited", status_code=429)
    order = await _make_order(db_session)
    body, headers = signed_webhook(
        StripeEventFactory.checkout_session_completed(
            order_id=order.id,
            amount_total=99900,
            metadata={"order_id": str(order.id), "product": "Fuel order - petrol"},
        )
    )

    response = await billing_client.post(WEBHOOK_URL, content=body, headers=headers)

    assert response.status_code == 200
    invoice = notifier_fake.create_and_send.await_args.args[0]
    assert [(i.description, i.quantity, i.unit_price) for i in invoice.items] == [
        ("Fuel order - petrol", 1, 999.0)
    ]

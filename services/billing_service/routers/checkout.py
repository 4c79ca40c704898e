"""Checkout: turn a priced fuel request into a pending order and a Stripe session."""

from fastapi import APIRouter, Depends, HTTPException, status
from libs.auth.models import AuthUser
from libs.common.config import get_settings
from libs.common.logging import get_logger
from libs.db.session import get_async_db
from services.access_service.dependencies import require_approved_customer
from services.billing_service.models import FuelPrice, FuelType, Order, OrderStatus
from services.billing_service.schemas import (
    CheckoutSessionRequest,
    CheckoutSessionResponse,
    FuelPricesResponse,
)
from services.billing_service.stripe_client import (
    StripeClient,
    StripeError,
    get_stripe_client,
)
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["checkout"])
logger = get_logger(__name__)


@router.get("/prices", response_model=FuelPricesResponse)
async def get_prices(db: AsyncSession = Depends(get_async_db)):
    """Today's per-litre prices in pence."""
    rows = (await db.execute(select(FuelPrice))).scalars().all()
    if not rows:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="No prices found"
        )
    return FuelPricesResponse(**{row.fuel.value: row.unit_price_pence for row in rows})


@router.post("/checkout/create-session", response_model=CheckoutSessionResponse)
async def create_checkout_session(
    payload: CheckoutSessionRequest,
    current_user: AuthUser = Depends(require_approved_customer),
    db: AsyncSession = Depends(get_async_db),
    stripe: StripeClient = Depends(get_stripe_client),
):
    """
    Create a pending order at today's price and a Stripe Checkout Session for it.

    The order id travels in the session and payment intent metadata; the
    webhook uses it to mark the order paid.
    """
    settings = get_settings()
    email = current_user.normalized_email

    price = await db.get(FuelPrice, payload.fuel)
    if price is None or price.unit_price_pence <= 0:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"No current price for {payload.fuel.value}",
        )

    order = Order(
        user_email=email,
        fuel=payload.fuel,
        litres=payload.litres,
        unit_price_pence=price.unit_price_pence,
        total_pence=price.unit_price_pence * payload.litres,
        name=payload.name,
        address_line1=payload.address_line1,
        address_line2=payload.address_line2,
        city=payload.city,
        postcode=payload.postcode,
        delivery_date=payload.delivery_date,
        notes=payload.notes,
        status=OrderStatus.PENDING,
    )
    db.add(order)
    await db.commit()
    await db.refresh(order)

    metadata = {
        "order_id": str(order.id),
        "email": email,
        "fuel": payload.fuel.value,
        "litres": str(payload.litres),
        "unit_price_pence": str(price.unit_price_pence),
        "product": _product_name(payload.fuel),
    }
    site = settings.SITE_URL.rstrip("/")

    try:
        session = await stripe.create_checkout_session(
            customer_email=email,
            product_name=f"{_product_name(payload.fuel)} - {payload.litres} L",
            unit_amount=order.total_pence,
            quantity=1,
            currency=settings.DEFAULT_CURRENCY,
            metadata=metadata,
            success_url=(
                f"{site}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}"
                f"&orderId={order.id}"
            ),
            cancel_url=f"{site}/checkout/cancel?orderId={order.id}",
        )
    except StripeError as e:
        logger.error("Checkout session creation failed for order %s: %s", order.id, e)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Checkout creation failed",
        )

    # Guarded on pending so a fast webhook that already marked it paid wins.
    # The webhook still works from metadata if this write is lost.
    try:
        await db.execute(
            update(Order)
            .where(Order.id == order.id, Order.status == OrderStatus.PENDING)
            .values(status=OrderStatus.ORDERED, stripe_session_id=session.id)
        )
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("Could not store session %s on order %s: %s", session.id, order.id, e)

    return CheckoutSessionResponse(url=session.url, order_id=order.id)


def _product_name(fuel: FuelType) -> str:
    return f"Fuel order - {fuel.value}"

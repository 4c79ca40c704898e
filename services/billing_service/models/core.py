import uuid
from datetime import date, datetime

from libs.common.datetime_utils import utc_now
from libs.db.base import Base, JSONType
from services.billing_service.models.enums import FuelType, OrderStatus, enum_values
from sqlalchemy import BigInteger, Date, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column


class Order(Base):
    """A customer fuel order. Only the webhook reconciler moves it to paid."""

    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_email: Mapped[str] = mapped_column(String(320), index=True, nullable=False)

    fuel: Mapped[FuelType] = mapped_column(
        SAEnum(
            FuelType,
            name="fuel_type_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=False,
    )
    litres: Mapped[int] = mapped_column(Integer, nullable=False)
    # Money is held in pence
    unit_price_pence: Mapped[int] = mapped_column(Integer, nullable=False)
    total_pence: Mapped[int] = mapped_column(BigInteger, nullable=False)

    name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    address_line1: Mapped[str | None] = mapped_column(String(200), nullable=True)
    address_line2: Mapped[str | None] = mapped_column(String(200), nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    postcode: Mapped[str | None] = mapped_column(String(16), nullable=True)
    delivery_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[OrderStatus] = mapped_column(
        SAEnum(
            OrderStatus,
            name="order_status_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=OrderStatus.PENDING,
        nullable=False,
    )

    stripe_session_id: Mapped[str | None] = mapped_column(
        String(255), index=True, nullable=True
    )
    stripe_payment_intent_id: Mapped[str | None] = mapped_column(
        String(255), index=True, nullable=True
    )
    paid_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    def __repr__(self):
        return f"<Order {self.id} {self.status.value}>"


class WebhookEvent(Base):
    """
    Append-only record of every Stripe event seen. The primary key on the
    provider event id is what makes redelivery detectable.
    """

    __tablename__ = "webhook_events"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    type: Mapped[str] = mapped_column(String(128), nullable=False)
    raw: Mapped[dict] = mapped_column(JSONType, nullable=False)
    received_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    def __repr__(self):
        return f"<WebhookEvent {self.id} {self.type}>"


class Payment(Base):
    """Reconciliation row per observed payment intent."""

    __tablename__ = "payments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    pi_id: Mapped[str | None] = mapped_column(
        String(255), unique=True, index=True, nullable=True
    )
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(8), default="GBP", nullable=False)
    # Stripe's own status string, e.g. "succeeded"
    status: Mapped[str] = mapped_column(String(64), nullable=False)
    email: Mapped[str | None] = mapped_column(String(320), index=True, nullable=True)
    order_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, index=True, nullable=True)
    cs_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    # "metadata" is reserved by SQLAlchemy's Declarative API
    meta: Mapped[dict | None] = mapped_column(JSONType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    def __repr__(self):
        return f"<Payment {self.pi_id or self.id}>"


class WebhookLog(Base):
    """Operator-facing audit trail of each reconciliation step."""

    __tablename__ = "webhook_logs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    event_type: Mapped[str] = mapped_column(String(128), index=True, nullable=False)
    event_id: Mapped[str | None] = mapped_column(String(255), index=True, nullable=True)
    order_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    status: Mapped[str | None] = mapped_column(String(64), nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )


class FuelPrice(Base):
    """Current per-litre price for each fuel, in pence. Maintained by the price import job."""

    __tablename__ = "fuel_prices"

    fuel: Mapped[FuelType] = mapped_column(
        SAEnum(
            FuelType,
            name="fuel_type_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        primary_key=True,
    )
    unit_price_pence: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

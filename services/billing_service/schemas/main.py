import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from services.billing_service.models import FuelType, OrderStatus


class CheckoutSessionRequest(BaseModel):
    fuel: FuelType
    litres: int = Field(..., gt=0, le=100_000)
    delivery_date: Optional[date] = None
    name: Optional[str] = Field(default=None, max_length=200)
    address_line1: Optional[str] = Field(default=None, max_length=200)
    address_line2: Optional[str] = Field(default=None, max_length=200)
    city: Optional[str] = Field(default=None, max_length=100)
    postcode: Optional[str] = Field(default=None, max_length=16)
    notes: Optional[str] = Field(default=None, max_length=1000)


class CheckoutSessionResponse(BaseModel):
    url: str
    order_id: uuid.UUID


class OrderResponse(BaseModel):
    id: uuid.UUID
    user_email: str
    fuel: FuelType
    litres: int
    unit_price_pence: int
    total_pence: int
    name: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    postcode: Optional[str] = None
    delivery_date: Optional[date] = None
    status: OrderStatus
    stripe_session_id: Optional[str] = None
    paid_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PaymentResponse(BaseModel):
    id: uuid.UUID
    pi_id: Optional[str] = None
    amount: int
    currency: str
    status: str
    email: Optional[str] = None
    order_id: Optional[uuid.UUID] = None
    cs_id: Optional[str] = None
    meta: Optional[dict] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class FuelPricesResponse(BaseModel):
    """Per-litre prices in pence, 0 when a fuel has no price yet."""

    petrol: int = 0
    diesel: int = 0

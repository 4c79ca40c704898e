"""Billing Service schemas package."""

from services.billing_service.schemas.events import (
    CheckoutSessionCompleted,
    EventPayloadError,
    PaymentIntentSucceeded,
    ProviderEvent,
    UnknownEvent,
    parse_event,
)
from services.billing_service.schemas.main import (
    CheckoutSessionRequest,
    CheckoutSessionResponse,
    FuelPricesResponse,
    OrderResponse,
    PaymentResponse,
)

__all__ = [
    "CheckoutSessionCompleted",
    "CheckoutSessionRequest",
    "CheckoutSessionResponse",
    "EventPayloadError",
    "FuelPricesResponse",
    "OrderResponse",
    "PaymentIntentSucceeded",
    "PaymentResponse",
    "ProviderEvent",
    "UnknownEvent",
    "parse_event",
]

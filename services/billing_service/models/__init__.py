"""Billing Service models package."""

from services.billing_service.models.core import (
    FuelPrice,
    Order,
    Payment,
    WebhookEvent,
    WebhookLog,
)
from services.billing_service.models.enums import AuditEvent, FuelType, OrderStatus

__all__ = [
    "AuditEvent",
    "FuelPrice",
    "FuelType",
    "Order",
    "OrderStatus",
    "Payment",
    "WebhookEvent",
    "WebhookLog",
]

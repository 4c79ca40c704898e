"""Enum definitions for billing service models."""

import enum


def enum_values(enum_cls):
    """Return persistent DB values for SAEnum mappings."""
    return [member.value for member in enum_cls]


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    ORDERED = "ordered"
    PAID = "paid"
    CANCELLED = "cancelled"


class FuelType(str, enum.Enum):
    PETROL = "petrol"
    DIESEL = "diesel"


class AuditEvent(str, enum.Enum):
    """event_type values written to webhook_logs."""

    RECEIVED = "received"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    ORDER_PAID = "order_updated_to_paid"
    ORPHAN = "orphan_event"
    INTENT_FETCH_FAILED = "payment_intent_fetch_failed"
    PAYMENT_LEDGER_FAILED = "payment_ledger_failed"
    INVOICE_SENT = "invoice_sent"
    INVOICE_FAILED = "invoice_failed"
    HANDLER_ERROR = "handler_error"

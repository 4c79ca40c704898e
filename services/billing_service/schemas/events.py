"""
Typed view of the Stripe event envelope.

Only two event shapes drive reconciliation; everything else parses into
UnknownEvent and is acknowledged without side effects.
"""

import json
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    TypeAdapter,
    ValidationError,
    field_validator,
)

CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
PAYMENT_INTENT_SUCCEEDED = "payment_intent.succeeded"


class EventPayloadError(ValueError):
    """The signed body is not a usable Stripe event."""


class StripeObject(BaseModel):
    model_config = ConfigDict(extra="ignore")

    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("metadata", mode="before")
    @classmethod
    def _metadata_or_empty(cls, v):
        return v or {}

    def meta(self, key: str) -> Optional[str]:
        value = self.metadata.get(key)
        if value is None or value == "":
            return None
        return str(value)


class BillingDetails(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    email: Optional[str] = None


class Charge(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    billing_details: Optional[BillingDetails] = None


class Shipping(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None


class PaymentIntent(StripeObject):
    id: str
    amount: int = 0
    amount_received: Optional[int] = None
    currency: Optional[str] = None
    status: Optional[str] = None
    receipt_email: Optional[str] = None
    shipping: Optional[Shipping] = None
    latest_charge: Union[Charge, str, None] = None

    @property
    def order_reference(self) -> Optional[str]:
        return self.meta("order_id")

    @property
    def settled_amount(self) -> int:
        """Amount actually captured, in minor units."""
        if self.amount_received is not None:
            return self.amount_received
        return self.amount

    @property
    def customer_email(self) -> Optional[str]:
        if self.receipt_email:
            return self.receipt_email
        email = self.meta("customer_email") or self.meta("email")
        if email:
            return email
        if isinstance(self.latest_charge, Charge) and self.latest_charge.billing_details:
            return self.latest_charge.billing_details.email
        return None

    @property
    def customer_name(self) -> Optional[str]:
        if self.shipping and self.shipping.name:
            return self.shipping.name
        return self.meta("customer_name")


class CheckoutSession(StripeObject):
    id: str
    payment_intent: Union[PaymentIntent, str, None] = None
    customer_details: Optional[BillingDetails] = None
    customer_email: Optional[str] = None
    currency: Optional[str] = None
    amount_total: Optional[int] = None
    payment_status: Optional[str] = None

    @property
    def order_reference(self) -> Optional[str]:
        return self.meta("order_id")

    @property
    def payment_intent_id(self) -> Optional[str]:
        if isinstance(self.payment_intent, PaymentIntent):
            return self.payment_intent.id
        return self.payment_intent

    @property
    def email(self) -> Optional[str]:
        if self.customer_details and self.customer_details.email:
            return self.customer_details.email
        return self.customer_email or self.meta("email")

    @property
    def customer_name(self) -> Optional[str]:
        if self.customer_details and self.customer_details.name:
            return self.customer_details.name
        return None


class _EventBase(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1)
    created: Optional[int] = None
    livemode: bool = False


class CheckoutSessionData(BaseModel):
    object: CheckoutSession


class PaymentIntentData(BaseModel):
    object: PaymentIntent


class CheckoutSessionCompleted(_EventBase):
    type: Literal["checkout.session.completed"]
    data: CheckoutSessionData

    @property
    def session(self) -> CheckoutSession:
        return self.data.object


class PaymentIntentSucceeded(_EventBase):
    type: Literal["payment_intent.succeeded"]
    data: PaymentIntentData

    @property
    def payment_intent(self) -> PaymentIntent:
        return self.data.object


class UnknownEvent(_EventBase):
    pass


_UNKNOWN = "unknown"


def _event_kind(value: Any) -> str:
    """Discriminator tag for an event; any type not handled here is unknown."""
    event_type = value.get("type") if isinstance(value, dict) else getattr(value, "type", None)
    if isinstance(event_type, str) and event_type in (
        CHECKOUT_SESSION_COMPLETED,
        PAYMENT_INTENT_SUCCEEDED,
    ):
        return event_type
    return _UNKNOWN


ProviderEvent = Annotated[
    Union[
        Annotated[CheckoutSessionCompleted, Tag(CHECKOUT_SESSION_COMPLETED)],
        Annotated[PaymentIntentSucceeded, Tag(PAYMENT_INTENT_SUCCEEDED)],
        Annotated[UnknownEvent, Tag(_UNKNOWN)],
    ],
    Discriminator(_event_kind),
]

_provider_event_adapter = TypeAdapter(ProviderEvent)


def parse_event(raw_body: bytes) -> tuple[ProviderEvent, dict]:
    """
    Decode and validate a signed webhook body.

    Returns the typed event and the decoded payload (kept as the raw
    snapshot for the event store).
    """
    try:
        payload = json.loads(raw_body.decode("utf-8") or "{}")
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise EventPayloadError(f"Body is not valid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise EventPayloadError("Event payload must be a JSON object")

    try:
        return _provider_event_adapter.validate_python(payload), payload
    except ValidationError as e:
        raise EventPayloadError(f"Malformed {payload.get('type')} event: {e}") from e

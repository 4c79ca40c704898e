"""
Stripe API client for checkout and payment reconciliation.

Provides async methods for:
- Creating Checkout Sessions for a pending order
- Retrieving a PaymentIntent (to recover order metadata)
- Listing a Checkout Session's line items (for invoices)
"""

from dataclasses import dataclass
from typing import Any, List
from urllib.parse import urlencode

import httpx
from libs.common.config import get_settings
from libs.common.logging import get_logger
from pydantic import ValidationError
from services.billing_service.schemas.events import PaymentIntent

logger = get_logger(__name__)


@dataclass
class CreatedCheckoutSession:
    """Result of creating a Checkout Session."""

    id: str
    url: str


@dataclass
class LineItem:
    """One invoice line derived from a Checkout Session line item."""

    description: str
    quantity: int
    unit_amount: int  # minor units


class StripeError(Exception):
    """Base exception for Stripe API errors."""

    def __init__(
        self, message: str, status_code: int = None, response_data: dict = None
    ):
        self.message = message
        self.status_code = status_code
        self.response_data = response_data or {}
        super().__init__(message)


def encode_form(data: Any, prefix: str = "") -> list[tuple[str, str]]:
    """
    Flatten nested dicts/lists into Stripe's bracketed form encoding, e.g.
    ``{"metadata": {"order_id": "x"}}`` -> ``[("metadata[order_id]", "x")]``.
    """
    pairs: list[tuple[str, str]] = []
    if isinstance(data, dict):
        for key, value in data.items():
            name = f"{prefix}[{key}]" if prefix else str(key)
            pairs.extend(encode_form(value, name))
    elif isinstance(data, (list, tuple)):
        for index, value in enumerate(data):
            pairs.extend(encode_form(value, f"{prefix}[{index}]"))
    elif data is None:
        pass
    elif isinstance(data, bool):
        pairs.append((prefix, "true" if data else "false"))
    else:
        pairs.append((prefix, str(data)))
    return pairs


class StripeClient:
    """Async client for the Stripe endpoints FuelFlow uses."""

    def __init__(self, secret_key: str = None, api_base: str = None, timeout: float = 30.0):
        settings = get_settings()
        self.secret_key = secret_key or settings.STRIPE_SECRET_KEY
        self.api_base = (api_base or settings.STRIPE_API_BASE).rstrip("/")
        self.timeout = timeout

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: list[tuple[str, str]] = None,
        form_data: dict = None,
    ) -> dict:
        """Make an async request to the Stripe API."""
        if not self.secret_key:
            raise StripeError("STRIPE_SECRET_KEY is not configured")

        url = f"{self.api_base}{endpoint}"
        headers = {"Authorization": f"Bearer {self.secret_key}"}
        content = None
        if form_data:
            headers["Content-Type"] = "application/x-www-form-urlencoded"
            content = urlencode(encode_form(form_data))

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(
                    method=method,
                    url=url,
                    headers=headers,
                    params=params,
                    content=content,
                )
        except httpx.HTTPError as e:
            raise StripeError(f"Stripe request failed: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = {}

        if not response.is_success:
            error = data.get("error") or {}
            logger.error(f"Stripe API error: {response.status_code} - {error}")
            raise StripeError(
                message=error.get("message", "Unknown Stripe error"),
                status_code=response.status_code,
                response_data=data,
            )

        return data

    # =========================================================================
    # Checkout
    # =========================================================================

    async def create_checkout_session(
        self,
        *,
        customer_email: str,
        product_name: str,
        unit_amount: int,
        quantity: int,
        currency: str,
        metadata: dict[str, str],
        success_url: str,
        cancel_url: str,
    ) -> CreatedCheckoutSession:
        """
        Create a hosted Checkout Session in payment mode.

        ``metadata`` is attached to both the session and its payment intent
        so the webhook can find the order from either event.
        """
        data = await self._request(
            "POST",
            "/v1/checkout/sessions",
            form_data={
                "mode": "payment",
                "customer_email": customer_email,
                "line_items": [
                    {
                        "price_data": {
                            "currency": currency,
                            "product_data": {"name": product_name},
                            "unit_amount": unit_amount,
                        },
                        "quantity": quantity,
                    }
                ],
                "metadata": metadata,
                "payment_intent_data": {"metadata": metadata},
                "success_url": success_url,
                "cancel_url": cancel_url,
            },
        )
        return CreatedCheckoutSession(id=data.get("id", ""), url=data.get("url", ""))

    async def list_line_items(self, session_id: str) -> List[LineItem]:
        """
        Get a Checkout Session's line items with product names expanded.

        Unit amounts fall back to ``amount_total / quantity`` when the price
        carries no unit amount.
        """
        data = await self._request(
            "GET",
            f"/v1/checkout/sessions/{session_id}/line_items",
            params=[("limit", "100"), ("expand[]", "data.price.product")],
        )

        items = []
        for row in data.get("data", []):
            quantity = row.get("quantity") or 1
            price = row.get("price") or {}
            unit_amount = price.get("unit_amount")
            if unit_amount is None:
                unit_amount = round((row.get("amount_total") or 0) / quantity)
            product = price.get("product")
            product_name = product.get("name") if isinstance(product, dict) else None
            items.append(
                LineItem(
                    description=row.get("description") or product_name or "Item",
                    quantity=quantity,
                    unit_amount=unit_amount,
                )
            )

        return items

    # =========================================================================
    # Payment intents
    # =========================================================================

    async def retrieve_payment_intent(self, payment_intent_id: str) -> PaymentIntent:
        """Fetch a PaymentIntent, with its latest charge expanded for billing email."""
        data = await self._request(
            "GET",
            f"/v1/payment_intents/{payment_intent_id}",
            params=[("expand[]", "latest_charge")],
        )
        try:
            return PaymentIntent.model_validate(data)
        except ValidationError as e:
            raise StripeError(f"Unexpected payment intent shape: {e}", response_data=data) from e


def get_stripe_client() -> StripeClient:
    """FastAPI dependency returning a StripeClient instance."""
    return StripeClient()

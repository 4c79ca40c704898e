"""
Invoice notifier: asks the invoice service to render an invoice PDF and
email it to the customer once a payment has been reconciled.

The notifier never raises. Every outcome comes back as a NotifierResult so
the webhook can log and audit a failure without failing the delivery.

Usage:
    notifier = get_invoice_notifier()
    result = await notifier.create_and_send(
        InvoiceRequest(
            customer=InvoiceCustomer(name="Jo", email="jo@example.com"),
            items=[InvoiceItem(description="Diesel", quantity=1000, unit_price=1.45)],
            currency="GBP",
        )
    )
"""

from dataclasses import dataclass
from typing import Optional

import httpx
from libs.common.config import get_settings
from libs.common.logging import get_logger, get_request_id
from pydantic import BaseModel, ConfigDict, Field

logger = get_logger(__name__)

INVOICE_PATH = "/api/invoices/create"


class InvoiceCustomer(BaseModel):
    name: str = "Customer"
    email: str = ""


class InvoiceItem(BaseModel):
    description: str
    quantity: int
    # Major units (pounds), as the invoice renderer expects
    unit_price: float = Field(..., alias="unitPrice")

    model_config = ConfigDict(populate_by_name=True)


class InvoiceRequest(BaseModel):
    customer: InvoiceCustomer
    items: list[InvoiceItem]
    currency: str


@dataclass
class NotifierResult:
    ok: bool
    error: Optional[str] = None
    status_code: Optional[int] = None
    email_id: Optional[str] = None


class InvoiceNotifier:
    """HTTP client for the invoice create-and-email endpoint."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        secret: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.INVOICE_SERVICE_URL).rstrip("/")
        self.secret = secret if secret is not None else settings.INVOICE_SECRET
        self.timeout = timeout or settings.INVOICE_TIMEOUT_SECONDS

    def _headers(self) -> dict[str, str]:
        headers = {"x-invoice-secret": self.secret}
        request_id = get_request_id()
        if request_id:
            headers["X-Request-ID"] = request_id
        return headers

    async def create_and_send(self, invoice: InvoiceRequest) -> NotifierResult:
        if not self.secret:
            return NotifierResult(ok=False, error="INVOICE_SECRET not set")
        if not invoice.items:
            return NotifierResult(ok=False, error="Invoice has no line items")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}{INVOICE_PATH}",
                    json=invoice.model_dump(by_alias=True),
                    headers=self._headers(),
                )
        except httpx.HTTPError as e:
            logger.error("Invoice request for %s failed: %s", invoice.customer.email, e)
            return NotifierResult(ok=False, error=f"{type(e).__name__}: {e}")

        if response.status_code >= 400:
            logger.error(
                "Invoice route returned %d for %s: %s",
                response.status_code,
                invoice.customer.email,
                response.text,
            )
            return NotifierResult(
                ok=False,
                error=f"Invoice route error: {response.status_code} {response.text}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError:
            body = {}

        return NotifierResult(
            ok=True, status_code=response.status_code, email_id=body.get("emailId")
        )


def get_invoice_notifier() -> InvoiceNotifier:
    """FastAPI dependency returning an InvoiceNotifier instance."""
    return InvoiceNotifier()

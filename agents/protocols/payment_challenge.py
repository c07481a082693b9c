"""
Payment-challenge ordering protocol, client side.

Phase one sends ``{item, quantity}`` with no proof and expects a 402 carrying an
invoice. Phase two resends the identical body with the settlement proof in the
``x-payment-hash`` header (and the invoice id in ``x-invoice-id``) and expects a
success payload.
"""

import logging
from dataclasses import dataclass

import httpx
from pydantic import ValidationError

from models.errors import BackendError, InvalidInvoice, NetworkUnreachable, OrderRejected
from models.procurement import Invoice, OrderAcceptedBody, OrderRequest, PaymentRequiredBody

logger = logging.getLogger(__name__)

PAYMENT_HASH_HEADER = "x-payment-hash"
INVOICE_ID_HEADER = "x-invoice-id"


@dataclass(frozen=True)
class PaymentRequired:
    invoice: Invoice
    message: str = ""


@dataclass(frozen=True)
class OrderAccepted:
    message: str
    tracking_id: str | None = None


OrderOutcome = PaymentRequired | OrderAccepted


class PaymentChallengeClient:
    """
    Talks to a supplier's ``/buy-stock`` endpoint.

    Args:
        base_url: Supplier service root, e.g. ``http://localhost:3000``.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport (tests mount the supplier app here).
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
        order_path: str = "/buy-stock",
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport
        self.order_path = order_path

    async def request_order(
        self,
        item: str,
        quantity: int,
        *,
        proof: str | None = None,
        invoice_id: str | None = None,
    ) -> OrderOutcome:
        """Send one order request. Returns the outcome or raises a ProcurementError."""
        body = OrderRequest(item=item, quantity=quantity).model_dump(by_alias=True)
        headers = {}
        if proof:
            headers[PAYMENT_HASH_HEADER] = proof
        if invoice_id:
            headers[INVOICE_ID_HEADER] = invoice_id

        try:
            async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.order_path, json=body, headers=headers)
        except httpx.TransportError as exc:
            raise NetworkUnreachable(f"Supplier at {self.base_url} is unreachable: {exc}") from exc

        logger.debug(f"POST {self.order_path} ({'with' if proof else 'without'} proof) -> {response.status_code}")
        if response.status_code == 402:
            return self._parse_challenge(response)
        if response.is_success:
            return self._parse_success(response)
        raise BackendError(
            f"Supplier answered {response.status_code}: {response.text[:200]}",
            status_code=response.status_code,
        )

    def _parse_challenge(self, response: httpx.Response) -> PaymentRequired:
        try:
            body = PaymentRequiredBody.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise InvalidInvoice(f"Payment-required response carried no usable invoice: {exc}") from exc
        return PaymentRequired(invoice=body.payment_details, message=body.message)

    def _parse_success(self, response: httpx.Response) -> OrderAccepted:
        try:
            payload = response.json()
        except ValueError as exc:
            raise BackendError("Supplier success response was not JSON.", status_code=response.status_code) from exc
        if not isinstance(payload, dict) or not payload.get("success"):
            message = payload.get("message", "no message") if isinstance(payload, dict) else "malformed payload"
            raise OrderRejected(f"Supplier declined the order: {message}")
        try:
            body = OrderAcceptedBody.model_validate(payload)
        except ValidationError as exc:
            raise BackendError(f"Supplier success payload malformed: {exc}", status_code=response.status_code) from exc
        return OrderAccepted(message=body.message, tracking_id=body.tracking_id)

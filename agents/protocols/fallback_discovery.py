"""
Fallback supplier discovery.

Used when on-chain settlement with the primary supplier fails. Each candidate
supplier publishes a discovery document at ``/.well-known/agent.json``; suppliers
that can restock are asked for a counter-offer and yielded one at a time.
This channel has no payment challenge: orders are placed directly on terms.
"""

import logging
from collections.abc import AsyncIterator
from decimal import Decimal

import httpx
from pydantic import ValidationError

from models.procurement import (
    CounterOffer,
    DiscoveryDocument,
    NegotiationRequest,
    PurchaseOrderRequest,
    PurchaseOrderResult,
)
from models.supplier import Supplier

logger = logging.getLogger(__name__)

DISCOVERY_PATH = "/.well-known/agent.json"


class FallbackDiscoveryClient:
    """
    Args:
        candidate_urls: Base URLs of alternate suppliers, probed in order.
        target_price: Price proposed during negotiation.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport shared by every request.
    """

    def __init__(
        self,
        candidate_urls: list[str],
        *,
        target_price: Decimal = Decimal("0.0001"),
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.candidate_urls = [u.rstrip("/") for u in candidate_urls]
        self.target_price = target_price
        self.timeout = timeout
        self.transport = transport

    def _client(self, base_url: str) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=base_url, timeout=self.timeout, transport=self.transport)

    async def discover(self, item: str, quantity: int) -> AsyncIterator[Supplier]:
        """Yield suppliers able to restock ``item``. Unreachable candidates are skipped."""
        for base_url in self.candidate_urls:
            supplier = await self._probe(base_url, item, quantity)
            if supplier is not None:
                logger.info(f"Discovered fallback supplier {supplier.name} at {base_url} ({supplier.price} per order)")
                yield supplier

    async def _probe(self, base_url: str, item: str, quantity: int) -> Supplier | None:
        try:
            async with self._client(base_url) as client:
                response = await client.get(DISCOVERY_PATH)
                response.raise_for_status()
                doc = DiscoveryDocument.model_validate(response.json())
                if not _can_restock(doc, item):
                    logger.info(f"Supplier {doc.name} at {base_url} cannot restock {item}; skipping.")
                    return None

                price = self.target_price
                if "negotiation" in doc.capabilities:
                    price = await self._negotiate(client, quantity)
        except (httpx.HTTPError, ValueError, ValidationError) as exc:
            logger.warning(f"Skipping fallback candidate {base_url}: {exc}")
            return None

        return Supplier(
            supplier_id=base_url,
            name=doc.name,
            base_url=base_url,
            estimated_delivery=doc.estimated_delivery,
            price=price,
            payment_types=tuple(doc.payment_types),
        )

    async def _negotiate(self, client: httpx.AsyncClient, quantity: int) -> Decimal:
        request = NegotiationRequest(quantity=quantity, proposed_price=self.target_price)
        response = await client.post("/negotiate", json=request.model_dump(by_alias=True, mode="json"))
        response.raise_for_status()
        offer = CounterOffer.model_validate(response.json())
        return Decimal(offer.counter_offer)

    async def place_order(self, supplier: Supplier, item: str, quantity: int) -> PurchaseOrderResult:
        """Place a direct order. Transport and HTTP failures come back as ``success=False``."""
        request = PurchaseOrderRequest(item=item, quantity=quantity, agreed_price=supplier.price)
        try:
            async with self._client(supplier.base_url) as client:
                response = await client.post("/purchase-orders", json=request.model_dump(by_alias=True, mode="json"))
                response.raise_for_status()
                return PurchaseOrderResult.model_validate(response.json())
        except (httpx.HTTPError, ValueError, ValidationError) as exc:
            logger.warning(f"Order with fallback supplier {supplier.name} failed: {exc}")
            return PurchaseOrderResult(
                success=False,
                message=f"Order with {supplier.name} failed: {exc}",
                protocol_used=supplier.preferred_protocol,
            )


def _can_restock(doc: DiscoveryDocument, item: str) -> bool:
    capabilities = {c.lower() for c in doc.capabilities}
    return "restock" in capabilities or item.lower() in capabilities

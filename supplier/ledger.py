"""
Supplier-side ledger: prices orders, issues invoices, records paid orders and
answers the dashboard and negotiation queries.
"""

import logging
import uuid
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Protocol

from config.config import SupplierPricingConfig
from models.enums import Currency, OrderStatus
from models.errors import PaymentVerificationFailed
from models.procurement import (
    CounterOffer,
    DashboardSummary,
    Invoice,
    NegotiationRequest,
    Order,
    OrderRequest,
    PurchaseOrderRequest,
    PurchaseOrderResult,
)

logger = logging.getLogger(__name__)


class PaymentVerifier(Protocol):
    async def verify(self, proof: str, invoice: Invoice) -> None:
        """Raise PaymentVerificationFailed unless ``proof`` settles ``invoice``."""
        ...


@dataclass(frozen=True)
class DeferredOrder:
    """Direct order taken through the fallback channel, paid on terms."""

    item: str
    quantity: int
    price: Decimal
    id: str = field(default_factory=lambda: f"po_{uuid.uuid4().hex[:12]}")
    timestamp: datetime = field(default_factory=datetime.now)
    status: OrderStatus = OrderStatus.DEFERRED


class Ledger:
    """
    In-memory, append-only order ledger of one supplier.

    Args:
        destination_address: Wallet that invoices point payers to. ``None`` leaves
            the ledger unable to invoice until configured.
        pricing: Pricing parameters.
        clock: Source of "now"; the surge rule reads its hour.
        verifier: Optional on-chain proof verifier. Without one, a proof is
            accepted on presence alone. With one, each proof settles at most
            one order.
        max_outstanding_invoices: Unpaid invoices kept for price binding;
            the oldest are dropped beyond this.
    """

    def __init__(
        self,
        destination_address: str | None,
        pricing: SupplierPricingConfig | None = None,
        *,
        currency: Currency = Currency.ETH,
        chain: str = "Base Sepolia",
        clock: Callable[[], datetime] = datetime.now,
        verifier: PaymentVerifier | None = None,
        max_outstanding_invoices: int = 1000,
    ):
        self.destination_address = destination_address
        self.pricing = pricing or SupplierPricingConfig()
        self.currency = currency
        self.chain = chain
        self.clock = clock
        self.verifier = verifier
        self.orders: list[Order] = []
        self.deferred_orders: list[DeferredOrder] = []
        self._outstanding: OrderedDict[str, Invoice] = OrderedDict()
        if max_outstanding_invoices <= 0:
            raise ValueError("max_outstanding_invoices must be positive.")
        self.max_outstanding_invoices = max_outstanding_invoices
        self._spent_proofs: set[str] = set()
        self._quantum = Decimal(1).scaleb(-self.pricing.decimal_places)

    @property
    def can_invoice(self) -> bool:
        return bool(self.destination_address)

    def _round(self, amount: Decimal) -> Decimal:
        return amount.quantize(self._quantum, rounding=ROUND_HALF_UP)

    def quote(self, quantity: int, at: datetime | None = None) -> Decimal:
        """price = base + surge (hour >= surge start) - bulk discount (quantity > bulk threshold)."""
        if quantity <= 0:
            raise ValueError("Quantity must be positive.")
        when = at or self.clock()
        p = self.pricing
        price = p.base_price
        if when.hour >= p.surge_start_hour:
            price += p.surge_amount
        if quantity > p.bulk_quantity_threshold:
            price -= p.bulk_discount
        return self._round(price)

    def issue_invoice(self, request: OrderRequest) -> Invoice:
        """Phase one: compute a fresh invoice. No order is recorded."""
        if not self.can_invoice:
            raise RuntimeError("Supplier wallet address is not configured.")
        now = self.clock()
        invoice = Invoice(
            amount=self.quote(request.quantity, now),
            currency=self.currency,
            chain=self.chain,
            destination=self.destination_address,
            issued_at=now,
            item=request.item,
            quantity=request.quantity,
        )
        self._outstanding[invoice.invoice_id] = invoice
        while len(self._outstanding) > self.max_outstanding_invoices:
            expired_id, _ = self._outstanding.popitem(last=False)
            logger.debug(f"Invoice {expired_id} dropped unpaid; its price is no longer held.")
        logger.info(f"Order blocked, invoice {invoice.invoice_id} issued: {invoice.amount} {invoice.currency.value} for {request.quantity} {request.item}")
        return invoice

    def _bound_invoice(self, request: OrderRequest, invoice_id: str | None) -> Invoice | None:
        if not invoice_id:
            return None
        invoice = self._outstanding.get(invoice_id)
        if invoice is None:
            logger.warning(f"Unknown invoice {invoice_id}; price will be recomputed.")
            return None
        if invoice.item != request.item or invoice.quantity != request.quantity:
            logger.warning(f"Invoice {invoice_id} does not match {request.quantity} {request.item}; price will be recomputed.")
            return None
        return invoice

    async def fulfil(self, request: OrderRequest, proof: str, invoice_id: str | None = None) -> Order:
        """
        Phase two: record an order paid with ``proof``.

        The paid amount is taken from the referenced invoice when it matches
        the request, otherwise recomputed at the current time.
        """
        if not proof or not proof.strip():
            raise PaymentVerificationFailed("A payment proof is required.")

        invoice = self._bound_invoice(request, invoice_id)
        if invoice is not None:
            amount = invoice.amount
        else:
            amount = self.quote(request.quantity)

        if self.verifier is not None:
            target = invoice or Invoice(
                amount=amount,
                currency=self.currency,
                chain=self.chain,
                destination=self.destination_address or "",
                item=request.item,
                quantity=request.quantity,
            )
            key = proof.strip().lower()
            if key in self._spent_proofs:
                raise PaymentVerificationFailed(f"Payment proof {proof} has already been used for another order.")
            # Claimed before the await so a concurrent request cannot reuse it.
            self._spent_proofs.add(key)
            try:
                await self.verifier.verify(proof, target)
            except Exception:
                self._spent_proofs.discard(key)
                raise
        else:
            logger.warning(f"Accepting payment proof {proof} on presence alone; it is not checked on-chain.")

        order = Order(
            item=request.item,
            quantity=request.quantity,
            total_paid=amount,
            proof_reference=proof,
            invoice_id=invoice.invoice_id if invoice else None,
        )
        if invoice is not None:
            self._outstanding.pop(invoice.invoice_id, None)
        self.orders.append(order)
        logger.info(f"Payment proof {proof} received, shipping {order.quantity} {order.item} (order {order.id})")
        return order

    def tracking_id(self, order: Order) -> str:
        return f"TRK-{order.id.split('_')[-1].upper()}"

    def total_revenue(self) -> Decimal:
        return self._round(sum((o.total_paid for o in self.orders), Decimal(0)))

    def dashboard(self) -> DashboardSummary:
        return DashboardSummary(orders=list(self.orders), total_revenue=str(self.total_revenue()))

    def negotiate(self, request: NegotiationRequest) -> CounterOffer:
        """Accept proposals at or above the quote; otherwise meet halfway."""
        quote = self.quote(request.quantity)
        if request.proposed_price >= quote:
            counter = self._round(request.proposed_price)
        else:
            counter = self._round((request.proposed_price + quote) / 2)
        logger.info(f"Negotiation for {request.quantity} units: proposed {request.proposed_price}, quote {quote}, counter {counter}")
        return CounterOffer(counter_offer=str(counter), valid_for=self.pricing.negotiation_valid_for_seconds)

    def record_purchase_order(self, request: PurchaseOrderRequest) -> PurchaseOrderResult:
        """Direct order on net terms; kept apart from proof-backed orders."""
        price = request.agreed_price if request.agreed_price is not None else self.quote(request.quantity)
        po = DeferredOrder(item=request.item, quantity=request.quantity, price=self._round(price))
        self.deferred_orders.append(po)
        logger.info(f"Purchase order {po.id} accepted: {po.quantity} {po.item} at {po.price} on net terms")
        return PurchaseOrderResult(
            success=True,
            message=f"Purchase order {po.id} accepted: {po.quantity} {po.item} will ship on net terms.",
            protocol_used="net-terms",
        )

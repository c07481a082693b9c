"""
Wire models for the payment-challenge ordering protocol and the supplier ledger.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .enums import Currency, OrderStatus


class CamelModel(BaseModel):
    """Base for payloads exchanged as camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OrderRequest(CamelModel):
    """Body of ``POST /buy-stock``. Identical on both protocol phases."""

    item: str = Field(min_length=1)
    quantity: int = Field(gt=0)


class Invoice(CamelModel):
    """Payment demand returned with a 402 response. Immutable once issued."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    amount: Decimal
    currency: Currency = Currency.ETH
    chain: str = "Base Sepolia"
    destination: str
    invoice_id: str = Field(default_factory=lambda: f"inv_{uuid.uuid4().hex[:12]}")
    issued_at: datetime = Field(default_factory=datetime.now)
    item: str | None = None
    quantity: int | None = None


class PaymentRequiredBody(CamelModel):
    """Body of a 402 response."""

    error: str = "Payment Required"
    message: str = "You must pay to restock this item."
    payment_details: Invoice


class OrderAcceptedBody(CamelModel):
    """Body of a successful order response."""

    success: bool = True
    message: str
    tracking_id: str | None = None


class Order(CamelModel):
    """A fulfilled order on the supplier ledger. Never mutated after creation."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str = Field(default_factory=lambda: f"ord_{uuid.uuid4().hex[:12]}")
    timestamp: datetime = Field(default_factory=datetime.now)
    item: str
    quantity: int = Field(gt=0)
    total_paid: Decimal
    proof_reference: str
    status: OrderStatus = OrderStatus.PAID
    invoice_id: str | None = None

    @field_validator("proof_reference")
    @classmethod
    def proof_must_be_present(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("An order requires a non-empty proof reference.")
        return value


class DashboardSummary(CamelModel):
    """Answer to the dashboard query endpoint."""

    orders: list[Order]
    total_revenue: str


class DiscoveryDocument(BaseModel):
    """Served at ``/.well-known/agent.json`` for fallback discovery."""

    name: str
    capabilities: list[str] = Field(default_factory=list)
    payment_types: list[str] = Field(default_factory=list)
    estimated_delivery: str = "2-3 days"


class NegotiationRequest(CamelModel):
    quantity: int = Field(gt=0)
    proposed_price: Decimal = Field(gt=0)


class CounterOffer(CamelModel):
    counter_offer: str
    valid_for: int  # seconds


class PurchaseOrderRequest(CamelModel):
    """Direct order placed through the fallback channel."""

    item: str = Field(min_length=1)
    quantity: int = Field(gt=0)
    agreed_price: Decimal | None = None


class PurchaseOrderResult(CamelModel):
    success: bool
    message: str
    protocol_used: str

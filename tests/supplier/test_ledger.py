from datetime import datetime
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from config.config import SupplierPricingConfig
from models.enums import OrderStatus
from models.errors import PaymentVerificationFailed
from models.procurement import NegotiationRequest, OrderRequest, PurchaseOrderRequest
from supplier.ledger import Ledger

WALLET = "0x1111111111111111111111111111111111111111"
MORNING = datetime(2026, 3, 2, 9, 30)
EVENING = datetime(2026, 3, 2, 18, 0)


@pytest.fixture
def ledger() -> Ledger:
    return Ledger(WALLET, clock=lambda: MORNING)


# --- Pricing --- #


def test_quote_base_price_in_the_morning(ledger: Ledger):
    assert ledger.quote(50, MORNING) == Decimal("0.000100")


def test_quote_surge_from_five_pm(ledger: Ledger):
    assert ledger.quote(50, EVENING) == Decimal("0.000120")
    assert ledger.quote(50, datetime(2026, 3, 2, 17, 0)) == Decimal("0.000120")
    assert ledger.quote(50, datetime(2026, 3, 2, 16, 59)) == Decimal("0.000100")


def test_quote_bulk_discount_only_above_threshold(ledger: Ledger):
    assert ledger.quote(100, MORNING) == Decimal("0.000100")
    assert ledger.quote(101, MORNING) == Decimal("0.000090")


def test_quote_surge_and_bulk_combine(ledger: Ledger):
    assert ledger.quote(150, EVENING) == Decimal("0.000110")


def test_quote_rounds_to_six_places():
    pricing = SupplierPricingConfig(base_price=Decimal("0.00010049"))
    ledger = Ledger(WALLET, pricing, clock=lambda: MORNING)
    assert ledger.quote(1) == Decimal("0.000100")
    assert ledger.quote(1).as_tuple().exponent == -6


def test_quote_rejects_non_positive_quantity(ledger: Ledger):
    with pytest.raises(ValueError):
        ledger.quote(0)


# --- Invoicing --- #


def test_issue_invoice_records_no_order(ledger: Ledger):
    invoice = ledger.issue_invoice(OrderRequest(item="Rice", quantity=50))

    assert invoice.amount == Decimal("0.000100")
    assert invoice.destination == WALLET
    assert invoice.currency.value == "ETH"
    assert invoice.item == "Rice"
    assert invoice.quantity == 50
    assert ledger.orders == []


def test_repeated_invoices_are_independent(ledger: Ledger):
    request = OrderRequest(item="Rice", quantity=50)
    first = ledger.issue_invoice(request)
    second = ledger.issue_invoice(request)

    assert first.invoice_id != second.invoice_id
    # Each invoice also carries its own issue time.
    unique = {"invoice_id", "issued_at"}
    assert first.model_dump(exclude=unique) == second.model_dump(exclude=unique)
    assert ledger.orders == []


def test_oldest_unpaid_invoices_are_dropped():
    ledger = Ledger(WALLET, clock=lambda: MORNING, max_outstanding_invoices=3)
    request = OrderRequest(item="Rice", quantity=50)
    invoices = [ledger.issue_invoice(request) for _ in range(5)]

    assert list(ledger._outstanding) == [i.invoice_id for i in invoices[2:]]


@pytest.mark.asyncio
async def test_dropped_invoice_no_longer_binds_the_price():
    now = {"t": datetime(2026, 3, 2, 16, 59, 50)}
    ledger = Ledger(WALLET, clock=lambda: now["t"], max_outstanding_invoices=1)
    request = OrderRequest(item="Rice", quantity=50)
    first = ledger.issue_invoice(request)
    ledger.issue_invoice(OrderRequest(item="Rice", quantity=5))
    now["t"] = EVENING

    order = await ledger.fulfil(request, "0xABC", invoice_id=first.invoice_id)

    assert order.invoice_id is None
    assert order.total_paid == ledger.quote(50, EVENING)


def test_issue_invoice_without_wallet_fails():
    ledger = Ledger(None)
    assert not ledger.can_invoice
    with pytest.raises(RuntimeError):
        ledger.issue_invoice(OrderRequest(item="Rice", quantity=5))


# --- Fulfilment --- #


@pytest.mark.asyncio
async def test_fulfil_accepts_proof_on_presence(ledger: Ledger):
    order = await ledger.fulfil(OrderRequest(item="Rice", quantity=50), "0xABC")

    assert order.proof_reference == "0xABC"
    assert order.total_paid == Decimal("0.000100")
    assert order.status == OrderStatus.PAID
    assert ledger.orders == [order]


@pytest.mark.asyncio
async def test_fulfil_rejects_blank_proof(ledger: Ledger):
    with pytest.raises(PaymentVerificationFailed):
        await ledger.fulfil(OrderRequest(item="Rice", quantity=50), "   ")
    assert ledger.orders == []


@pytest.mark.asyncio
async def test_fulfil_charges_the_invoiced_price_across_the_surge_boundary():
    now = {"t": datetime(2026, 3, 2, 16, 59, 50)}
    ledger = Ledger(WALLET, clock=lambda: now["t"])
    request = OrderRequest(item="Rice", quantity=50)
    invoice = ledger.issue_invoice(request)

    now["t"] = datetime(2026, 3, 2, 17, 0, 10)
    order = await ledger.fulfil(request, "0xABC", invoice_id=invoice.invoice_id)

    assert order.total_paid == invoice.amount == Decimal("0.000100")
    assert order.invoice_id == invoice.invoice_id


@pytest.mark.asyncio
async def test_fulfil_recomputes_price_for_mismatched_invoice():
    now = {"t": datetime(2026, 3, 2, 16, 0)}
    ledger = Ledger(WALLET, clock=lambda: now["t"])
    invoice = ledger.issue_invoice(OrderRequest(item="Rice", quantity=50))

    now["t"] = EVENING
    order = await ledger.fulfil(OrderRequest(item="Rice", quantity=60), "0xABC", invoice_id=invoice.invoice_id)

    assert order.total_paid == Decimal("0.000120")
    assert order.invoice_id is None


@pytest.mark.asyncio
async def test_invoice_cannot_be_redeemed_twice(ledger: Ledger):
    request = OrderRequest(item="Rice", quantity=50)
    invoice = ledger.issue_invoice(request)

    first = await ledger.fulfil(request, "0xAAA", invoice_id=invoice.invoice_id)
    second = await ledger.fulfil(request, "0xBBB", invoice_id=invoice.invoice_id)

    assert first.invoice_id == invoice.invoice_id
    assert second.invoice_id is None


@pytest.mark.asyncio
async def test_fulfil_consults_verifier(ledger: Ledger):
    verifier = AsyncMock()
    ledger.verifier = verifier
    request = OrderRequest(item="Rice", quantity=50)
    invoice = ledger.issue_invoice(request)

    await ledger.fulfil(request, "0xABC", invoice_id=invoice.invoice_id)

    verifier.verify.assert_awaited_once_with("0xABC", invoice)


@pytest.mark.asyncio
async def test_fulfil_records_nothing_when_verification_fails(ledger: Ledger):
    verifier = AsyncMock()
    verifier.verify.side_effect = PaymentVerificationFailed("not mined")
    ledger.verifier = verifier

    with pytest.raises(PaymentVerificationFailed):
        await ledger.fulfil(OrderRequest(item="Rice", quantity=50), "0xABC")
    assert ledger.orders == []


@pytest.mark.asyncio
async def test_verified_proof_settles_only_one_order(ledger: Ledger):
    ledger.verifier = AsyncMock()
    request = OrderRequest(item="Rice", quantity=50)
    first = ledger.issue_invoice(request)
    second = ledger.issue_invoice(request)

    await ledger.fulfil(request, "0xABAB", invoice_id=first.invoice_id)
    with pytest.raises(PaymentVerificationFailed, match="already been used"):
        await ledger.fulfil(request, "0xabab", invoice_id=second.invoice_id)

    assert len(ledger.orders) == 1
    ledger.verifier.verify.assert_awaited_once()


@pytest.mark.asyncio
async def test_proof_that_failed_verification_can_be_presented_again(ledger: Ledger):
    ledger.verifier = AsyncMock()
    ledger.verifier.verify.side_effect = [PaymentVerificationFailed("not mined yet"), None]
    request = OrderRequest(item="Rice", quantity=50)

    with pytest.raises(PaymentVerificationFailed):
        await ledger.fulfil(request, "0xABC")
    order = await ledger.fulfil(request, "0xABC")

    assert ledger.orders == [order]


# --- Dashboard --- #


@pytest.mark.asyncio
async def test_dashboard_totals_revenue(ledger: Ledger):
    await ledger.fulfil(OrderRequest(item="Rice", quantity=50), "0x1")
    await ledger.fulfil(OrderRequest(item="Rice", quantity=150), "0x2")

    summary = ledger.dashboard()

    assert len(summary.orders) == 2
    assert summary.total_revenue == "0.000190"


def test_dashboard_empty(ledger: Ledger):
    summary = ledger.dashboard()
    assert summary.orders == []
    assert summary.total_revenue == "0.000000"


@pytest.mark.asyncio
async def test_tracking_id_derived_from_order(ledger: Ledger):
    order = await ledger.fulfil(OrderRequest(item="Rice", quantity=5), "0xABC")
    tracking = ledger.tracking_id(order)
    assert tracking.startswith("TRK-")
    assert tracking[4:] == order.id.split("_")[-1].upper()


# --- Negotiation and direct orders --- #


def test_negotiate_accepts_price_at_or_above_quote(ledger: Ledger):
    offer = ledger.negotiate(NegotiationRequest(quantity=50, proposed_price=Decimal("0.0002")))
    assert offer.counter_offer == "0.000200"
    assert offer.valid_for == 300


def test_negotiate_meets_halfway_below_quote(ledger: Ledger):
    offer = ledger.negotiate(NegotiationRequest(quantity=50, proposed_price=Decimal("0.00008")))
    assert offer.counter_offer == "0.000090"


def test_purchase_order_is_deferred_and_kept_apart(ledger: Ledger):
    result = ledger.record_purchase_order(PurchaseOrderRequest(item="Rice", quantity=50))

    assert result.success
    assert result.protocol_used == "net-terms"
    assert ledger.orders == []
    assert len(ledger.deferred_orders) == 1
    assert ledger.deferred_orders[0].status == OrderStatus.DEFERRED
    assert ledger.deferred_orders[0].price == Decimal("0.000100")

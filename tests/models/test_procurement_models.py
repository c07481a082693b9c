from decimal import Decimal

import pytest
from pydantic import ValidationError

from models.enums import Currency, WorkflowState
from models.errors import (
    ConfirmationTimeout,
    InsufficientFunds,
    InvalidInvoice,
    NetworkUnreachable,
    ProcurementError,
    TransactionRejected,
)
from models.inventory import Recommendation
from models.procurement import Invoice, Order, OrderRequest, PaymentRequiredBody
from models.supplier import Supplier


def test_invoice_parses_camel_case_and_is_frozen():
    invoice = Invoice.model_validate(
        {"amount": "0.00012", "currency": "ETH", "destination": "0xabc", "invoiceId": "inv_1"}
    )

    assert invoice.amount == Decimal("0.00012")
    assert invoice.currency == Currency.ETH
    assert invoice.chain == "Base Sepolia"
    with pytest.raises(ValidationError):
        invoice.amount = Decimal("1")


def test_payment_required_body_serializes_camel_case():
    body = PaymentRequiredBody(payment_details=Invoice(amount=Decimal("0.0001"), destination="0xabc"))
    dumped = body.model_dump(by_alias=True, mode="json")

    assert dumped["error"] == "Payment Required"
    assert dumped["paymentDetails"]["amount"] == "0.0001"
    assert "invoiceId" in dumped["paymentDetails"]


def test_order_requires_proof_and_positive_quantity():
    with pytest.raises(ValidationError):
        Order(item="Rice", quantity=5, total_paid=Decimal("0.0001"), proof_reference="  ")
    with pytest.raises(ValidationError):
        Order(item="Rice", quantity=0, total_paid=Decimal("0.0001"), proof_reference="0xABC")


def test_order_request_rejects_bad_input():
    with pytest.raises(ValidationError):
        OrderRequest(item="", quantity=5)
    with pytest.raises(ValidationError):
        OrderRequest(item="Rice", quantity=-1)


def test_recommendation_consistency():
    with pytest.raises(ValidationError):
        Recommendation(should_restock=True, recommended_quantity=0, urgency_score=5, reason="?")
    with pytest.raises(ValidationError):
        Recommendation(should_restock=False, recommended_quantity=0, urgency_score=11, reason="?")


def test_settlement_errors_are_flagged():
    assert InsufficientFunds("x").settlement_related
    assert ConfirmationTimeout("x").settlement_related
    assert isinstance(ConfirmationTimeout("x"), TransactionRejected)
    assert not InvalidInvoice("x").settlement_related
    assert not NetworkUnreachable("x").settlement_related
    assert NetworkUnreachable("x", settlement_related=True).settlement_related
    assert issubclass(InsufficientFunds, ProcurementError)


def test_terminal_states():
    terminal = {s for s in WorkflowState if s.is_terminal}
    assert terminal == {WorkflowState.IDLE, WorkflowState.COMPLETED, WorkflowState.FAILED, WorkflowState.NO_SUPPLIERS}


def test_supplier_preferred_protocol():
    assert Supplier("s", "S", "http://s", "1 day", Decimal("0.0001"), ("x402",)).preferred_protocol == "x402"
    assert Supplier("s", "S", "http://s", "1 day", Decimal("0.0001")).preferred_protocol == "direct"

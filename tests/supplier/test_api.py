from datetime import datetime
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from config.config import SupplierConfig
from models.errors import PaymentVerificationFailed
from supplier.api import build_ledger, create_app
from supplier.ledger import Ledger

WALLET = "0x2222222222222222222222222222222222222222"


@pytest.fixture
def ledger() -> Ledger:
    return Ledger(WALLET, clock=lambda: datetime(2026, 3, 2, 10, 0))


@pytest.fixture
def client(ledger: Ledger) -> TestClient:
    app = create_app(SupplierConfig(name="Test Supplier", wallet_address=WALLET), ledger)
    return TestClient(app)


def test_buy_stock_without_proof_returns_invoice(client: TestClient, ledger: Ledger):
    response = client.post("/buy-stock", json={"item": "Rice", "quantity": 50})

    assert response.status_code == 402
    body = response.json()
    assert body["error"] == "Payment Required"
    details = body["paymentDetails"]
    assert details["amount"] == "0.000100"
    assert details["currency"] == "ETH"
    assert details["chain"] == "Base Sepolia"
    assert details["destination"] == WALLET
    assert details["invoiceId"].startswith("inv_")
    assert ledger.orders == []


def test_repeated_unpaid_requests_record_nothing(client: TestClient, ledger: Ledger):
    for _ in range(3):
        assert client.post("/buy-stock", json={"item": "Rice", "quantity": 50}).status_code == 402
    assert ledger.orders == []


def test_buy_stock_with_proof_records_order(client: TestClient, ledger: Ledger):
    response = client.post(
        "/buy-stock",
        json={"item": "Rice", "quantity": 50},
        headers={"x-payment-hash": "0xABC"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["trackingId"].startswith("TRK-")
    assert len(ledger.orders) == 1
    assert ledger.orders[0].proof_reference == "0xABC"


def test_buy_stock_binds_invoice_id_header(client: TestClient, ledger: Ledger):
    challenge = client.post("/buy-stock", json={"item": "Rice", "quantity": 50}).json()
    invoice_id = challenge["paymentDetails"]["invoiceId"]

    client.post(
        "/buy-stock",
        json={"item": "Rice", "quantity": 50},
        headers={"x-payment-hash": "0xABC", "x-invoice-id": invoice_id},
    )

    assert ledger.orders[0].invoice_id == invoice_id


def test_buy_stock_rejects_invalid_body(client: TestClient):
    assert client.post("/buy-stock", json={"item": "Rice", "quantity": 0}).status_code == 422
    assert client.post("/buy-stock", json={"quantity": 5}).status_code == 422


def test_buy_stock_unavailable_without_wallet():
    app = create_app(SupplierConfig(wallet_address=None))
    response = TestClient(app).post("/buy-stock", json={"item": "Rice", "quantity": 50})
    assert response.status_code == 503


def test_failed_verification_reissues_challenge(ledger: Ledger):
    verifier = AsyncMock()
    verifier.verify.side_effect = PaymentVerificationFailed("Transaction 0xBAD not found.")
    ledger.verifier = verifier
    client = TestClient(create_app(SupplierConfig(wallet_address=WALLET), ledger))

    response = client.post(
        "/buy-stock",
        json={"item": "Rice", "quantity": 50},
        headers={"x-payment-hash": "0xBAD"},
    )

    assert response.status_code == 402
    assert response.json()["error"] == "Payment Verification Failed"
    assert ledger.orders == []


def test_orders_dashboard(client: TestClient):
    client.post("/buy-stock", json={"item": "Rice", "quantity": 50}, headers={"x-payment-hash": "0x1"})
    client.post("/buy-stock", json={"item": "Rice", "quantity": 10}, headers={"x-payment-hash": "0x2"})

    body = client.get("/orders").json()

    assert body["totalRevenue"] == "0.000200"
    assert [o["proofReference"] for o in body["orders"]] == ["0x1", "0x2"]
    assert body["orders"][0]["totalPaid"] == "0.000100"


def test_discovery_document(client: TestClient):
    body = client.get("/.well-known/agent.json").json()

    assert body["name"] == "Test Supplier"
    assert "restock" in body["capabilities"]
    assert body["payment_types"] == ["x402", "net-terms"]
    assert body["estimated_delivery"] == "2-3 days"


def test_negotiate_endpoint(client: TestClient):
    response = client.post("/negotiate", json={"quantity": 50, "proposedPrice": "0.00008"})
    assert response.status_code == 200
    assert response.json() == {"counterOffer": "0.000090", "validFor": 300}


def test_purchase_order_endpoint(client: TestClient, ledger: Ledger):
    response = client.post("/purchase-orders", json={"item": "Rice", "quantity": 50, "agreedPrice": "0.00009"})

    assert response.json() == {
        "success": True,
        "message": response.json()["message"],
        "protocolUsed": "net-terms",
    }
    assert ledger.orders == []
    assert len(ledger.deferred_orders) == 1


def test_build_ledger_without_rpc_skips_verifier():
    ledger = build_ledger(SupplierConfig(wallet_address=WALLET, verify_payments=True, rpc_url=None))
    assert ledger.verifier is None
    assert ledger.can_invoice

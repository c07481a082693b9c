"""
FastAPI application exposing a supplier ledger over the payment-challenge protocol.

Run with: uvicorn supplier.api:create_app --factory --port 3000
"""

import logging

from fastapi import FastAPI, Header
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config.config import SupplierConfig
from connectors.blockchain import OnChainPaymentVerifier
from models.errors import PaymentVerificationFailed
from models.procurement import (
    DiscoveryDocument,
    NegotiationRequest,
    OrderAcceptedBody,
    OrderRequest,
    PaymentRequiredBody,
    PurchaseOrderRequest,
)
from supplier.ledger import Ledger

logger = logging.getLogger(__name__)


def build_ledger(config: SupplierConfig) -> Ledger:
    verifier = None
    if config.verify_payments:
        if config.rpc_url:
            verifier = OnChainPaymentVerifier(config.rpc_url)
        else:
            logger.error("VERIFY_PAYMENTS is set but RPC_URL is missing; proofs will not be verified.")
    if not config.wallet_address:
        logger.error("SUPPLIER_WALLET_ADDRESS is not set; /buy-stock will answer 503 until configured.")
    return Ledger(config.wallet_address, config.pricing, verifier=verifier)


def create_app(config: SupplierConfig | None = None, ledger: Ledger | None = None) -> FastAPI:
    """Build the supplier service. Both arguments default to environment-driven values."""
    config = config or SupplierConfig.from_env()
    ledger = ledger or build_ledger(config)

    app = FastAPI(title=f"{config.name} Ledger Service")
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])
    app.state.config = config
    app.state.ledger = ledger

    @app.post("/buy-stock")
    async def buy_stock(
        order: OrderRequest,
        x_payment_hash: str | None = Header(default=None),
        x_invoice_id: str | None = Header(default=None),
    ):
        if not ledger.can_invoice:
            return JSONResponse(
                status_code=503,
                content={"error": "Service Unavailable", "message": "Supplier wallet address is not configured."},
            )

        if not x_payment_hash or not x_payment_hash.strip():
            invoice = ledger.issue_invoice(order)
            body = PaymentRequiredBody(payment_details=invoice)
            return JSONResponse(status_code=402, content=body.model_dump(by_alias=True, mode="json"))

        try:
            record = await ledger.fulfil(order, x_payment_hash.strip(), invoice_id=x_invoice_id)
        except PaymentVerificationFailed as exc:
            logger.warning(f"Rejected payment proof {x_payment_hash}: {exc}")
            invoice = ledger.issue_invoice(order)
            body = PaymentRequiredBody(
                error="Payment Verification Failed",
                message=str(exc),
                payment_details=invoice,
            )
            return JSONResponse(status_code=402, content=body.model_dump(by_alias=True, mode="json"))

        accepted = OrderAcceptedBody(
            message=f"Payment received for {record.quantity} {record.item}. Order shipped.",
            tracking_id=ledger.tracking_id(record),
        )
        return accepted.model_dump(by_alias=True, mode="json")

    @app.get("/orders")
    async def list_orders():
        return ledger.dashboard().model_dump(by_alias=True, mode="json")

    @app.get("/.well-known/agent.json")
    async def discovery_document():
        doc = DiscoveryDocument(
            name=config.name,
            capabilities=list(config.capabilities),
            payment_types=list(config.payment_types),
        )
        return doc.model_dump(mode="json")

    @app.post("/negotiate")
    async def negotiate(request: NegotiationRequest):
        return ledger.negotiate(request).model_dump(by_alias=True, mode="json")

    @app.post("/purchase-orders")
    async def purchase_order(request: PurchaseOrderRequest):
        return ledger.record_purchase_order(request).model_dump(by_alias=True, mode="json")

    return app

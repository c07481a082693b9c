"""
Restock orchestration.

``RestockWorkflow`` is one run of the restocking state machine:

    IDLE -> DECIDING -> REQUESTING_ORDER -> AWAITING_PAYMENT -> EXECUTING_SETTLEMENT
         -> AWAITING_CONFIRMATION -> SUBMITTING_PROOF -> COMPLETED
    any step -> FAILED [-> FALLBACK_DISCOVERY -> COMPLETED | NO_SUPPLIERS | FAILED]

``RestockAgent`` owns the single active-run handle. Starting a run is a
check-and-set with no suspension point in between, so at most one run is ever
in flight on the event loop; a low-stock event that arrives while a run is
active is ignored.
"""

import asyncio
import logging
import uuid
from contextlib import aclosing
from typing import Protocol

from config.config import RestockConfig
from models.enums import AgentType, Currency, TriggerSource, WorkflowState
from models.errors import BackendError, InvalidInvoice, OrderRejected, ProcurementError
from models.events import RESTOCK_FINISHED, RESTOCK_STARTED, STOCK_CHANGED, AgentEvent
from models.inventory import MarketContext, Recommendation
from models.procurement import Invoice
from models.settlement import PendingTransaction, Receipt
from models.state import AgentSnapshot, StateTransition, WorkflowSnapshot
from utils.activity import ActivityLog
from utils.event_bus import EventBus

from .base import BaseAgent
from .decision import DecisionEngine
from .inventory import InventoryAgent
from .protocols.fallback_discovery import FallbackDiscoveryClient
from .protocols.payment_challenge import OrderAccepted, PaymentChallengeClient

logger = logging.getLogger(__name__)


class Settlement(Protocol):
    """What the workflow needs from ``connectors.blockchain.SettlementExecutor``."""

    def ensure_configured(self) -> object: ...

    async def transfer(self, destination: str, amount) -> PendingTransaction: ...

    async def await_confirmation(self, pending: PendingTransaction, timeout: float | None = None) -> Receipt: ...


class RestockWorkflow:
    """A single run of the restock state machine. Create a new one per attempt."""

    def __init__(
        self,
        *,
        trigger: TriggerSource,
        inventory: InventoryAgent,
        decision_engine: DecisionEngine,
        payment_client: PaymentChallengeClient,
        settlement: Settlement,
        fallback: FallbackDiscoveryClient | None,
        config: RestockConfig,
        activity: ActivityLog,
        market: MarketContext | None = None,
    ):
        self.run_id = f"run_{uuid.uuid4().hex[:8]}"
        self.trigger = trigger
        self.inventory = inventory
        self.decision_engine = decision_engine
        self.payment_client = payment_client
        self.settlement = settlement
        self.fallback = fallback
        self.config = config
        self.activity = activity
        self.market = market or MarketContext()

        self.state = WorkflowState.IDLE
        self.history: list[StateTransition] = [StateTransition(state=self.state)]
        self.recommendation: Recommendation | None = None
        self.invoice: Invoice | None = None
        self.receipt: Receipt | None = None
        self.error: Exception | None = None
        self.fulfilled_quantity = 0

    @property
    def item(self) -> str:
        return self.inventory.item

    def _transition(self, state: WorkflowState) -> None:
        logger.debug(f"[{self.run_id}] {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(StateTransition(state=state))

    def states(self) -> list[WorkflowState]:
        return [t.state for t in self.history]

    async def run(self) -> WorkflowState:
        """Drive the run to a terminal state. Procurement failures never escape."""
        self._transition(WorkflowState.DECIDING)
        stock = self.inventory.stock
        self.recommendation = await self.decision_engine.recommend(
            stock, self.inventory.sales_telemetry(), self.market
        )
        quantity = self._quantity_to_order(stock, self.recommendation)
        if quantity is None:
            self._transition(WorkflowState.IDLE)
            return self.state

        try:
            await self._purchase(quantity)
        except ProcurementError as exc:
            self._fail(exc)
            if exc.settlement_related:
                await self._fallback(quantity)
        return self.state

    def _quantity_to_order(self, stock: int, rec: Recommendation) -> int | None:
        if self.trigger == TriggerSource.MANUAL:
            quantity = rec.recommended_quantity if rec.should_restock else self.config.fallback_quantity
            self.activity.info(f"Manual restock requested at stock {stock}: ordering {quantity} {self.item}.")
            return quantity

        if not rec.should_restock or rec.recommended_quantity <= 0:
            logger.info(f"[{self.run_id}] No restock at stock {stock}: {rec.reason}")
            return None
        if stock >= self.config.execute_threshold:
            self.activity.info(
                f"Advisor suggests restocking {rec.recommended_quantity} {self.item} early "
                f"(stock {stock}, urgency {rec.urgency_score}): {rec.reason} "
                f"Holding until stock drops below {self.config.execute_threshold}."
            )
            return None

        self.activity.warning(
            f"Stock low ({stock})! Agent waking up to order {rec.recommended_quantity} {self.item} "
            f"(urgency {rec.urgency_score}, {rec.advisor})."
        )
        return rec.recommended_quantity

    async def _purchase(self, quantity: int) -> None:
        self.settlement.ensure_configured()

        self._transition(WorkflowState.REQUESTING_ORDER)
        outcome = await self.payment_client.request_order(self.item, quantity)
        if isinstance(outcome, OrderAccepted):
            self.activity.warning(f"Supplier accepted the order without payment: {outcome.message}")
            await self._complete(quantity, outcome.tracking_id)
            return

        self._transition(WorkflowState.AWAITING_PAYMENT)
        invoice = self._validate_invoice(outcome.invoice)
        self.invoice = invoice
        self.activity.info(
            f"Payment required. Sending {invoice.amount} {invoice.currency.value} on {invoice.chain} "
            f"(invoice {invoice.invoice_id})..."
        )

        self._transition(WorkflowState.EXECUTING_SETTLEMENT)
        pending = await self.settlement.transfer(invoice.destination, invoice.amount)

        self._transition(WorkflowState.AWAITING_CONFIRMATION)
        self.activity.info(f"Transaction sent ({pending.tx_hash[:10]}...). Waiting for confirmation...")
        receipt = await self.settlement.await_confirmation(
            pending, timeout=self.config.confirmation_timeout_seconds
        )
        self.receipt = receipt
        self.activity.info(f"Payment confirmed in block {receipt.block_number}. Hash: {receipt.tx_hash[:10]}...")

        self._transition(WorkflowState.SUBMITTING_PROOF)
        outcome = await self.payment_client.request_order(
            self.item, quantity, proof=receipt.tx_hash, invoice_id=invoice.invoice_id
        )
        if not isinstance(outcome, OrderAccepted):
            raise BackendError(
                f"Supplier still demands payment after proof {receipt.tx_hash}: {outcome.message}",
                status_code=402,
            )
        self.activity.info(outcome.message)
        await self._complete(quantity, outcome.tracking_id)

    @staticmethod
    def _validate_invoice(invoice: Invoice) -> Invoice:
        if not invoice.destination or not invoice.destination.strip():
            raise InvalidInvoice("Invoice has no destination address.")
        if invoice.amount <= 0:
            raise InvalidInvoice(f"Invoice amount {invoice.amount} is not positive.")
        if invoice.currency != Currency.ETH:
            raise InvalidInvoice(f"Cannot settle invoices in {invoice.currency.value}.")
        return invoice

    async def _complete(self, quantity: int, reference_id: str | None) -> None:
        self.fulfilled_quantity = quantity
        self.recommendation = None
        self._transition(WorkflowState.COMPLETED)
        await self.inventory.receive_stock(quantity, reference_id=reference_id)

    def _fail(self, exc: Exception) -> None:
        self.error = exc
        self._transition(WorkflowState.FAILED)
        self.activity.error(f"Restock failed ({type(exc).__name__}): {exc}")

    def abort(self, exc: Exception) -> None:
        """Mark the run failed after an unexpected exception escaped ``run``."""
        if self.state != WorkflowState.FAILED:
            self._fail(exc)

    async def _fallback(self, quantity: int) -> None:
        self._transition(WorkflowState.FALLBACK_DISCOVERY)
        self.activity.warning("Settlement failed; searching for alternate suppliers...")
        if self.fallback is None:
            self._transition(WorkflowState.NO_SUPPLIERS)
            self.activity.error("No alternate suppliers configured; stock not replenished.")
            return

        found = 0
        try:
            async with aclosing(self.fallback.discover(self.item, quantity)) as suppliers:
                async for supplier in suppliers:
                    found += 1
                    result = await self.fallback.place_order(supplier, self.item, quantity)
                    if not result.success:
                        self.activity.warning(f"{supplier.name} declined: {result.message}")
                        continue
                    self.activity.info(
                        f"Fallback order placed with {supplier.name} via {result.protocol_used} "
                        f"(delivery {supplier.estimated_delivery}): {result.message}"
                    )
                    await asyncio.sleep(self.config.fallback_settlement_delay_seconds)
                    await self._complete(quantity, supplier.supplier_id)
                    return
        except ProcurementError as exc:
            self._fail(exc)
            return

        if found == 0:
            self._transition(WorkflowState.NO_SUPPLIERS)
            self.activity.error("No alternate suppliers available; stock not replenished.")
        else:
            self._fail(OrderRejected(f"All {found} fallback supplier(s) declined the order."))

    def snapshot(self) -> WorkflowSnapshot:
        return WorkflowSnapshot(
            run_id=self.run_id,
            trigger=self.trigger,
            state=self.state,
            history=list(self.history),
            recommendation=self.recommendation,
            error=str(self.error) if self.error else None,
            fulfilled_quantity=self.fulfilled_quantity,
        )


class RestockAgent(BaseAgent):
    """Watches stock events and schedules at most one restock workflow at a time."""

    def __init__(
        self,
        agent_id: str,
        event_bus: EventBus,
        *,
        inventory: InventoryAgent,
        decision_engine: DecisionEngine,
        payment_client: PaymentChallengeClient,
        settlement: Settlement,
        fallback: FallbackDiscoveryClient | None = None,
        config: RestockConfig | None = None,
        market: MarketContext | None = None,
        activity: ActivityLog | None = None,
    ):
        config = config or RestockConfig()
        super().__init__(
            agent_id,
            AgentType.PROCUREMENT,
            event_bus,
            activity if activity is not None else inventory.activity,
        )
        self.inventory = inventory
        self.decision_engine = decision_engine
        self.payment_client = payment_client
        self.settlement = settlement
        self.fallback = fallback
        self.config = config
        self.market = market or MarketContext()

        self._active: RestockWorkflow | None = None
        self._task: asyncio.Task | None = None
        self.last_run: RestockWorkflow | None = None
        self.runs_started = 0
        self.register_event_handlers()

    def register_event_handlers(self) -> None:
        self.event_bus.subscribe(STOCK_CHANGED, self.handle_stock_changed)

    @property
    def is_restocking(self) -> bool:
        return self._active is not None

    @property
    def active_run(self) -> RestockWorkflow | None:
        return self._active

    async def handle_stock_changed(self, event: AgentEvent) -> None:
        stock = event.payload.get("stock")
        if not isinstance(stock, int):
            logger.warning(f"Stock event {event.event_id} has no stock level; ignoring.")
            return
        if stock >= self.config.watch_threshold:
            return
        if self.try_start(TriggerSource.LOW_STOCK) is None:
            logger.debug(f"Stock at {stock} but run {self._active.run_id if self._active else '?'} is active; ignoring.")

    def trigger_manual(self) -> RestockWorkflow | None:
        """Dashboard button. Returns None if a run is already in flight."""
        run = self.try_start(TriggerSource.MANUAL)
        if run is None:
            self.activity.info("Manual restock ignored: a restock is already in progress.")
        return run

    def try_start(self, trigger: TriggerSource) -> RestockWorkflow | None:
        """Claim the active-run handle and schedule the run. Must not await before the claim."""
        if self._active is not None:
            return None
        run = RestockWorkflow(
            trigger=trigger,
            inventory=self.inventory,
            decision_engine=self.decision_engine,
            payment_client=self.payment_client,
            settlement=self.settlement,
            fallback=self.fallback,
            config=self.config,
            activity=self.activity,
            market=self.market,
        )
        self._active = run
        self.runs_started += 1
        self._task = asyncio.create_task(self._drive(run), name=run.run_id)
        return run

    async def _drive(self, run: RestockWorkflow) -> None:
        try:
            await self.publish_event(RESTOCK_STARTED, {"run_id": run.run_id, "trigger": run.trigger.value})
            await run.run()
        except Exception as exc:  # noqa: BLE001
            run.abort(exc)
            await self.handle_exception(exc, {"run_id": run.run_id, "state": run.state.value})
        finally:
            # Released unconditionally so the next low-stock event can start a new cycle.
            self._active = None
            self.last_run = run
        await self.publish_event(
            RESTOCK_FINISHED,
            {"run_id": run.run_id, "state": run.state.value, "fulfilled_quantity": run.fulfilled_quantity},
        )

    async def wait_idle(self) -> None:
        """Wait until no run is in flight (including runs started while waiting)."""
        while self._task is not None and not self._task.done():
            await asyncio.shield(self._task)

    def snapshot(self) -> AgentSnapshot:
        current = self._active.state if self._active else WorkflowState.IDLE
        return AgentSnapshot(
            item=self.inventory.item,
            stock=self.inventory.stock,
            is_restocking=self.is_restocking,
            state=current,
            active_run=self._active.snapshot() if self._active else None,
            last_run=self.last_run.snapshot() if self.last_run else None,
            activity=self.activity.entries(),
        )

"""
Inventory agent: the single owner of the tracked stock level.

Simulated retail sales decrement the stock (never below zero) and restock
completions increment it. Every change is published as an
``inventory.stock_changed`` event so the restock agent can react.
"""

import asyncio
import logging
from collections import deque
from collections.abc import Callable
from datetime import datetime

from models.enums import AgentType, InventoryEventType
from models.events import STOCK_CHANGED, InventoryEvent
from models.inventory import SalesTelemetry, SalesWindow
from utils.activity import ActivityLog
from utils.event_bus import EventBus

from .base import BaseAgent

logger = logging.getLogger(__name__)


class InventoryAgent(BaseAgent):
    """Tracks one item's stock and the sales that drain it."""

    def __init__(
        self,
        agent_id: str,
        event_bus: EventBus,
        *,
        item: str = "Rice",
        initial_stock: int = 20,
        sales_window_size: int = 10,
        history_size: int = 500,
        clock: Callable[[], datetime] = datetime.now,
        activity: ActivityLog | None = None,
    ):
        if initial_stock < 0:
            raise ValueError("Initial stock cannot be negative.")
        super().__init__(agent_id, AgentType.INVENTORY, event_bus, activity)
        self.item = item
        self._stock = initial_stock
        self.sales = SalesWindow(size=sales_window_size)
        self.clock = clock
        self.history: deque[InventoryEvent] = deque(maxlen=history_size)

    @property
    def stock(self) -> int:
        return self._stock

    async def record_sale(self, units: int = 1) -> bool:
        """Sell ``units`` if any stock is left. Returns False when nothing was sold."""
        if units <= 0:
            raise ValueError("Units sold must be positive.")
        if self._stock == 0:
            logger.debug(f"No {self.item} left to sell.")
            return False
        sold = min(units, self._stock)
        self._stock -= sold
        now = self.clock()
        for _ in range(sold):
            self.sales.record(now)
        await self._announce(InventoryEventType.SOLD, sold, now)
        return True

    async def receive_stock(self, quantity: int, reference_id: str | None = None) -> int:
        """Add a fulfilled restock. Additive, so sales during the restock are kept."""
        if quantity <= 0:
            raise ValueError("Received quantity must be positive.")
        self._stock += quantity
        self.activity.info(f"Received {quantity} {self.item}; stock now {self._stock}.")
        await self._announce(InventoryEventType.RECEIVED, quantity, self.clock(), reference_id)
        return self._stock

    def sales_telemetry(self, now: datetime | None = None) -> SalesTelemetry:
        now = now or self.clock()
        return SalesTelemetry(
            sales_per_hour=self.sales.sales_per_hour(now),
            total_sales_today=self.sales.total_today(now),
            hour_of_day=now.hour,
        )

    async def _announce(
        self,
        event_type: InventoryEventType,
        quantity: int,
        timestamp: datetime,
        reference_id: str | None = None,
    ) -> None:
        event = InventoryEvent(
            event_type=event_type,
            timestamp=timestamp,
            item=self.item,
            quantity=quantity,
            stock_after=self._stock,
            reference_id=reference_id,
        )
        self.history.append(event)
        await self.publish_event(
            STOCK_CHANGED,
            {"item": self.item, "stock": self._stock, "change": event_type.value, "quantity": quantity},
        )

    async def run_sales_ticker(self, interval: float, stop: asyncio.Event | None = None) -> None:
        """Sell one unit every ``interval`` seconds until ``stop`` is set or the task is cancelled."""
        stop = stop or asyncio.Event()
        logger.info(f"Sales simulation started: 1 {self.item} every {interval}s")
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                await self.record_sale()
        logger.info("Sales simulation stopped.")

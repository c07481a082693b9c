import asyncio
from datetime import datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from agents.inventory import InventoryAgent
from models.enums import InventoryEventType
from models.events import STOCK_CHANGED, AgentEvent
from models.inventory import SalesWindow
from utils.event_bus import EventBus


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 2, 12, 0))


@pytest.fixture
def mock_event_bus() -> AsyncMock:
    return AsyncMock(spec=EventBus)


@pytest.fixture
def inventory(mock_event_bus: AsyncMock, clock: FakeClock) -> InventoryAgent:
    return InventoryAgent("inv_test", mock_event_bus, initial_stock=3, clock=clock)


@pytest.mark.asyncio
async def test_sale_decrements_and_publishes(inventory: InventoryAgent, mock_event_bus: AsyncMock):
    assert await inventory.record_sale()

    assert inventory.stock == 2
    event: AgentEvent = mock_event_bus.publish.call_args.args[0]
    assert event.event_type == STOCK_CHANGED
    assert event.payload == {"item": "Rice", "stock": 2, "change": "SOLD", "quantity": 1}


@pytest.mark.asyncio
async def test_stock_never_goes_negative(inventory: InventoryAgent, mock_event_bus: AsyncMock):
    for _ in range(5):
        await inventory.record_sale()

    assert inventory.stock == 0
    assert mock_event_bus.publish.await_count == 3
    assert await inventory.record_sale() is False


@pytest.mark.asyncio
async def test_multi_unit_sale_is_capped_at_stock(inventory: InventoryAgent):
    assert await inventory.record_sale(units=10)
    assert inventory.stock == 0
    assert inventory.history[-1].quantity == 3


@pytest.mark.asyncio
async def test_receive_stock_is_additive(inventory: InventoryAgent):
    await inventory.record_sale()
    assert await inventory.receive_stock(50, reference_id="TRK-1") == 52

    last = inventory.history[-1]
    assert last.event_type == InventoryEventType.RECEIVED
    assert last.stock_after == 52
    assert last.reference_id == "TRK-1"
    assert "Received 50 Rice" in inventory.activity.messages()[0]


@pytest.mark.asyncio
async def test_history_keeps_only_recent_events(mock_event_bus: AsyncMock, clock: FakeClock):
    inventory = InventoryAgent("inv_bounded", mock_event_bus, initial_stock=10, history_size=3, clock=clock)
    for _ in range(5):
        await inventory.record_sale()

    assert len(inventory.history) == 3
    assert [e.stock_after for e in inventory.history] == [7, 6, 5]


@pytest.mark.asyncio
async def test_receive_stock_rejects_non_positive(inventory: InventoryAgent):
    with pytest.raises(ValueError):
        await inventory.receive_stock(0)


def test_negative_initial_stock_rejected(mock_event_bus: AsyncMock):
    with pytest.raises(ValueError):
        InventoryAgent("inv_bad", mock_event_bus, initial_stock=-1)


@pytest.mark.asyncio
async def test_sales_velocity_counts_last_hour(mock_event_bus: AsyncMock, clock: FakeClock):
    inventory = InventoryAgent("inv_vel", mock_event_bus, initial_stock=20, clock=clock)
    await inventory.record_sale()
    await inventory.record_sale()
    clock.advance(minutes=90)
    await inventory.record_sale()

    telemetry = inventory.sales_telemetry()

    assert telemetry.sales_per_hour == 1
    assert telemetry.total_sales_today == 3
    assert telemetry.hour_of_day == 13


def test_sales_window_keeps_only_recent_samples():
    window = SalesWindow(size=10)
    start = datetime(2026, 3, 2, 12, 0)
    for i in range(15):
        window.record(start + timedelta(seconds=i))

    assert len(window.samples) == 10
    assert window.sales_per_hour(start + timedelta(seconds=20)) == 10
    assert window.total_today(start) == 15


def test_sales_window_resets_daily_total():
    window = SalesWindow()
    window.record(datetime(2026, 3, 2, 23, 59))
    window.record(datetime(2026, 3, 3, 0, 1))

    assert window.total_today(datetime(2026, 3, 3, 0, 2)) == 1
    assert window.total_today(datetime(2026, 3, 4, 9, 0)) == 0


@pytest.mark.asyncio
async def test_sales_ticker_sells_until_stopped(mock_event_bus: AsyncMock):
    inventory = InventoryAgent("inv_tick", mock_event_bus, initial_stock=100)
    stop = asyncio.Event()

    task = asyncio.create_task(inventory.run_sales_ticker(0.01, stop))
    await asyncio.sleep(0.1)
    stop.set()
    await task

    assert 0 < 100 - inventory.stock < 100

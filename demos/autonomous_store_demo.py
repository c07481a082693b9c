"""
Demonstrates the autonomous restock loop.

A simulated till sells one unit of rice every 1.5 seconds. When stock runs low
the restock agent asks the advisor, pays the supplier's invoice on-chain and
restocks; if settlement fails it falls back to alternate suppliers.

Start the supplier first:
    uvicorn supplier.api:create_app --factory --port 3000
then run:
    python -m demos.autonomous_store_demo

Reads RPC_URL, AGENT_PRIVATE_KEY, SUPPLIER_API_URL, FALLBACK_SUPPLIER_URLS and
OPENAI_API_KEY from the environment (or the project .env).
"""

import asyncio
import logging

from agents.decision import DecisionEngine, LocalHeuristicAdvisor, RemoteRestockAdvisor
from agents.inventory import InventoryAgent
from agents.protocols.fallback_discovery import FallbackDiscoveryClient
from agents.protocols.payment_challenge import PaymentChallengeClient
from agents.restock import RestockAgent
from config.config import AgentEndpointsConfig, RestockConfig, SettlementConfig
from connectors.blockchain import SettlementExecutor
from utils.activity import ActivityLog
from utils.event_bus import EventBus
from utils.logger import get_logger

logger = get_logger()
demo_logger = logging.getLogger(__name__)


def build_agents(
    restock_config: RestockConfig,
    endpoints: AgentEndpointsConfig,
    settlement_config: SettlementConfig,
) -> tuple[InventoryAgent, RestockAgent]:
    bus = EventBus()
    activity = ActivityLog(capacity=restock_config.activity_capacity, mirror=demo_logger)

    inventory = InventoryAgent(
        "inventory_001",
        bus,
        item=restock_config.item,
        initial_stock=restock_config.initial_stock,
        sales_window_size=restock_config.sales_window_size,
        activity=activity,
    )
    engine = DecisionEngine(
        RemoteRestockAdvisor.from_env(
            item=restock_config.item,
            model=endpoints.advisor_model,
            timeout=endpoints.advisor_timeout_seconds,
            low_stock_threshold=restock_config.execute_threshold,
            default_quantity=restock_config.fallback_quantity,
        ),
        LocalHeuristicAdvisor(restock_config.execute_threshold, restock_config.fallback_quantity),
    )
    fallback = None
    if endpoints.fallback_supplier_urls:
        fallback = FallbackDiscoveryClient(endpoints.fallback_supplier_urls, timeout=endpoints.http_timeout_seconds)

    restock = RestockAgent(
        "restock_001",
        bus,
        inventory=inventory,
        decision_engine=engine,
        payment_client=PaymentChallengeClient(endpoints.supplier_api_url, timeout=endpoints.http_timeout_seconds),
        settlement=SettlementExecutor(settlement_config),
        fallback=fallback,
        config=restock_config,
        activity=activity,
    )
    return inventory, restock


async def demo_autonomous_store(duration_seconds: float = 60.0):
    restock_config = RestockConfig()
    endpoints = AgentEndpointsConfig.from_env()
    settlement_config = SettlementConfig.from_env()

    missing = settlement_config.missing_fields()
    if missing:
        logger.warning(f"Settlement not configured ({', '.join(missing)}); restock runs will fail until it is.")

    inventory, restock = build_agents(restock_config, endpoints, settlement_config)
    logger.info(f"Store open: {inventory.stock} {inventory.item} on the shelf. Supplier at {endpoints.supplier_api_url}.")

    stop = asyncio.Event()
    ticker = asyncio.create_task(inventory.run_sales_ticker(restock_config.sale_interval_seconds, stop))
    try:
        await asyncio.sleep(duration_seconds)
    finally:
        stop.set()
        await ticker
        await restock.wait_idle()

    snapshot = restock.snapshot()
    print("\n--- Final State ---")
    print(f"Stock: {snapshot.stock} {snapshot.item}")
    if snapshot.last_run:
        print(f"Last run: {snapshot.last_run.run_id} ended {snapshot.last_run.state.value}")
    print("Recent activity (newest first):")
    for entry in snapshot.activity:
        print(f"  [{entry.timestamp:%H:%M:%S}] {entry.level:<7} {entry.message}")


if __name__ == "__main__":
    asyncio.run(demo_autonomous_store())

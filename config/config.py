"""
Configuration classes for the autonomous restock project.
Defines thresholds, pricing and settlement settings in a type-safe, extensible way.
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal

from models.errors import ConfigurationMissing
from utils.env import env_flag, env_list


@dataclass
class RestockConfig:
    item: str = "Rice"
    initial_stock: int = 20
    watch_threshold: int = 15  # Below this the workflow considers restocking
    execute_threshold: int = 10  # Below this the workflow actually pays
    fallback_quantity: int = 50
    sales_window_size: int = 10
    sale_interval_seconds: float = 1.5
    confirmation_timeout_seconds: float = 120.0
    fallback_settlement_delay_seconds: float = 2.0
    activity_capacity: int = 20

    def __post_init__(self):
        if self.initial_stock < 0:
            raise ValueError("Initial stock cannot be negative.")
        if self.execute_threshold > self.watch_threshold:
            raise ValueError("Execute threshold must not exceed the watch threshold.")
        if self.fallback_quantity <= 0:
            raise ValueError("Fallback quantity must be positive.")


@dataclass
class SupplierPricingConfig:
    base_price: Decimal = Decimal("0.0001")
    surge_amount: Decimal = Decimal("0.00002")
    surge_start_hour: int = 17
    bulk_discount: Decimal = Decimal("0.00001")
    bulk_quantity_threshold: int = 100
    decimal_places: int = 6
    negotiation_valid_for_seconds: int = 300


@dataclass
class SettlementConfig:
    """Settings consumed by the settlement executor. Every field is required to transact."""

    rpc_url: str | None = None
    private_key: str | None = field(default=None, repr=False)
    poll_latency_seconds: float = 1.0
    request_timeout_seconds: float = 10.0
    gas_limit: int = 21_000

    @classmethod
    def from_env(cls) -> "SettlementConfig":
        return cls(
            rpc_url=os.getenv("RPC_URL"),
            private_key=os.getenv("AGENT_PRIVATE_KEY"),
        )

    def missing_fields(self) -> list[str]:
        missing = []
        if not self.rpc_url:
            missing.append("RPC_URL")
        if not self.private_key:
            missing.append("AGENT_PRIVATE_KEY")
        return missing

    def require(self) -> None:
        """Raise ConfigurationMissing if anything needed to transact is absent."""
        missing = self.missing_fields()
        if missing:
            raise ConfigurationMissing(f"Missing settlement configuration: {', '.join(missing)}")


@dataclass
class SupplierConfig:
    """Settings of the supplier-side ledger service."""

    name: str = "Primary Supplier"
    wallet_address: str | None = None
    rpc_url: str | None = None
    verify_payments: bool = False
    pricing: SupplierPricingConfig = field(default_factory=SupplierPricingConfig)
    capabilities: list[str] = field(default_factory=lambda: ["restock", "bulk_orders", "negotiation"])
    payment_types: list[str] = field(default_factory=lambda: ["x402", "net-terms"])

    @classmethod
    def from_env(cls) -> "SupplierConfig":
        return cls(
            name=os.getenv("SUPPLIER_NAME", "Primary Supplier"),
            wallet_address=os.getenv("SUPPLIER_WALLET_ADDRESS"),
            rpc_url=os.getenv("RPC_URL"),
            verify_payments=env_flag("VERIFY_PAYMENTS"),
        )


@dataclass
class AgentEndpointsConfig:
    supplier_api_url: str = "http://localhost:3000"
    fallback_supplier_urls: list[str] = field(default_factory=list)
    http_timeout_seconds: float = 10.0
    advisor_model: str = "gpt-4o-mini"
    advisor_timeout_seconds: float = 5.0

    @classmethod
    def from_env(cls) -> "AgentEndpointsConfig":
        return cls(
            supplier_api_url=os.getenv("SUPPLIER_API_URL", "http://localhost:3000"),
            fallback_supplier_urls=env_list("FALLBACK_SUPPLIER_URLS"),
            advisor_model=os.getenv("ADVISOR_MODEL", "gpt-4o-mini"),
        )


# Example usage:
# settlement = SettlementConfig.from_env()
# settlement.require()  # raises ConfigurationMissing when RPC_URL/AGENT_PRIVATE_KEY are unset

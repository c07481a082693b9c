"""
Data models for alternate suppliers found through fallback discovery.
"""

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class Supplier:
    """
    A candidate supplier produced by a discovery call.
    Ephemeral: discarded once an order is placed or the fallback is abandoned.
    """

    supplier_id: str
    name: str
    base_url: str
    estimated_delivery: str
    price: Decimal
    payment_types: tuple[str, ...] = ()

    @property
    def preferred_protocol(self) -> str:
        return self.payment_types[0] if self.payment_types else "direct"

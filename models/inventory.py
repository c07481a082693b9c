"""
Inventory-related data models.
Includes the rolling sales window, the telemetry and market inputs of the
decision engine, and the restock Recommendation it produces.
"""

from collections import deque
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


@dataclass
class SalesWindow:
    """
    Rolling window of the most recent sale timestamps.
    Only the last ``size`` samples are kept; velocity is counted over the last hour.
    """

    size: int = 10
    samples: deque = field(init=False)
    sales_today: int = 0
    _day: date | None = None

    def __post_init__(self):
        if self.size <= 0:
            raise ValueError("Sales window size must be positive.")
        self.samples = deque(maxlen=self.size)

    def record(self, timestamp: datetime) -> None:
        if self._day != timestamp.date():
            self._day = timestamp.date()
            self.sales_today = 0
        self.samples.append(timestamp)
        self.sales_today += 1

    def sales_per_hour(self, now: datetime) -> int:
        cutoff = now - timedelta(hours=1)
        return sum(1 for ts in self.samples if ts > cutoff)

    def total_today(self, now: datetime) -> int:
        return self.sales_today if self._day == now.date() else 0


class SalesTelemetry(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    sales_per_hour: int = Field(ge=0)
    total_sales_today: int = Field(ge=0)
    hour_of_day: int = Field(ge=0, le=23)


class MarketContext(BaseModel):
    """Static placeholders, modelled as inputs so a real advisor can use them."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    season: str = "regular"
    supplier_rating: float = 4.5
    market_trend: str = "stable"


class Recommendation(BaseModel):
    """Output of one decision cycle."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    should_restock: bool
    recommended_quantity: int = Field(ge=0)
    urgency_score: int = Field(ge=0, le=10)
    reason: str
    advisor: str = "unknown"

    @model_validator(mode="after")
    def restock_needs_quantity(self) -> "Recommendation":
        if self.should_restock and self.recommended_quantity <= 0:
            raise ValueError("A restock recommendation needs a positive quantity.")
        return self

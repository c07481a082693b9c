from __future__ import annotations

"""Prompt builders for the restock advisor.

Builders return plain strings so the caller decides which chat role they go in.
"""

from models.inventory import MarketContext, SalesTelemetry

__all__ = ["RESTOCK_SYSTEM_PROMPT", "build_restock_prompt"]


RESTOCK_SYSTEM_PROMPT = (
    "You are the purchasing brain of a small grocery store. "
    "You decide whether to reorder stock and how much. "
    "Always answer with a single JSON object and nothing else."
)


def build_restock_prompt(
    item: str,
    stock: int,
    telemetry: SalesTelemetry,
    market: MarketContext,
    *,
    low_stock_threshold: int,
    default_quantity: int,
) -> str:
    """Return the user prompt asking for a restock recommendation."""
    return f"""
        Item: {item}
        Current stock: {stock} units (low-stock threshold: {low_stock_threshold} units)
        Sales in the last hour: {telemetry.sales_per_hour}
        Sales today: {telemetry.total_sales_today}
        Hour of day: {telemetry.hour_of_day}
        Season: {market.season}
        Supplier rating: {market.supplier_rating}
        Market trend: {market.market_trend}

        Decide whether to restock. A typical order is {default_quantity} units.
        Respond ONLY with JSON of the form:
        {{"shouldRestock": true|false, "recommendedQuantity": <integer >= 0>,
          "urgencyScore": <integer 0-10>, "reason": "<one sentence>"}}
        recommendedQuantity must be positive when shouldRestock is true.
        """

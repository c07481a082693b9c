"""
Module: agents.decision

Restock decision engine. A remote LLM advisor is consulted first; any failure
(missing client, timeout, API error, unusable answer) falls back to a
deterministic local rule. The engine never touches the stock level.
"""

import logging
import math
import os
from typing import Protocol

from openai import AsyncOpenAI
from pydantic import ValidationError

from models.inventory import MarketContext, Recommendation, SalesTelemetry
from utils.openai_utils import first_message_content, safe_chat_completion

from .prompts import RESTOCK_SYSTEM_PROMPT, build_restock_prompt

logger = logging.getLogger(__name__)


class RestockAdvisor(Protocol):
    name: str

    async def recommend(
        self, stock: int, telemetry: SalesTelemetry, market: MarketContext
    ) -> Recommendation: ...


class LocalHeuristicAdvisor:
    """Restock a fixed quantity whenever stock is under the low-stock threshold."""

    name = "local-heuristic"

    def __init__(self, low_stock_threshold: int = 10, quantity: int = 50):
        if low_stock_threshold <= 0 or quantity <= 0:
            raise ValueError("Threshold and quantity must be positive.")
        self.low_stock_threshold = low_stock_threshold
        self.quantity = quantity

    def urgency(self, stock: int) -> int:
        if stock >= self.low_stock_threshold:
            return 0
        deficit = self.low_stock_threshold - stock
        return max(1, min(10, math.ceil(10 * deficit / self.low_stock_threshold)))

    def decide(self, stock: int) -> Recommendation:
        if stock < self.low_stock_threshold:
            return Recommendation(
                should_restock=True,
                recommended_quantity=self.quantity,
                urgency_score=self.urgency(stock),
                reason=f"Stock {stock} is below {self.low_stock_threshold}; reorder {self.quantity} units.",
                advisor=self.name,
            )
        return Recommendation(
            should_restock=False,
            recommended_quantity=0,
            urgency_score=0,
            reason=f"Stock {stock} is at or above {self.low_stock_threshold}; no reorder needed.",
            advisor=self.name,
        )

    async def recommend(
        self, stock: int, telemetry: SalesTelemetry, market: MarketContext
    ) -> Recommendation:
        return self.decide(stock)


class RemoteRestockAdvisor:
    """
    Asks an OpenAI chat model for a JSON recommendation.
    Raises on any failure; callers are expected to wrap it in ``DecisionEngine``.
    """

    name = "remote-llm"

    def __init__(
        self,
        client: AsyncOpenAI | None,
        *,
        item: str = "Rice",
        model: str = "gpt-4o-mini",
        timeout: float = 5.0,
        low_stock_threshold: int = 10,
        default_quantity: int = 50,
    ):
        self.client = client
        self.item = item
        self.model = model
        self.timeout = timeout
        self.low_stock_threshold = low_stock_threshold
        self.default_quantity = default_quantity

    @classmethod
    def from_env(cls, **kwargs) -> "RemoteRestockAdvisor":
        """Build with an AsyncOpenAI client when ``OPENAI_API_KEY`` is set, else with none."""
        api_key = os.getenv("OPENAI_API_KEY")
        client = None
        if api_key and api_key != "YOUR_API_KEY_HERE":
            client = AsyncOpenAI(api_key=api_key)
        else:
            logger.warning("OpenAI API key missing or placeholder. Remote restock advice disabled.")
        return cls(client, **kwargs)

    async def recommend(
        self, stock: int, telemetry: SalesTelemetry, market: MarketContext
    ) -> Recommendation:
        prompt = build_restock_prompt(
            self.item,
            stock,
            telemetry,
            market,
            low_stock_threshold=self.low_stock_threshold,
            default_quantity=self.default_quantity,
        )
        completion = await safe_chat_completion(
            self.client,
            model=self.model,
            messages=[
                {"role": "system", "content": RESTOCK_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            logger=logger,
            attempt_timeout=self.timeout,
            response_format={"type": "json_object"},
            temperature=0.2,
        )
        recommendation = Recommendation.model_validate_json(first_message_content(completion))
        return recommendation.model_copy(update={"advisor": self.name})


class DecisionEngine:
    """Try the primary advisor, fall back to the local heuristic on any failure."""

    def __init__(self, primary: RestockAdvisor | None, fallback: LocalHeuristicAdvisor):
        self.primary = primary
        self.fallback = fallback

    async def recommend(
        self,
        stock: int,
        telemetry: SalesTelemetry,
        market: MarketContext | None = None,
    ) -> Recommendation:
        market = market or MarketContext()
        if self.primary is not None:
            try:
                return await self.primary.recommend(stock, telemetry, market)
            except (ValidationError, ValueError) as exc:
                logger.warning(f"Advisor {self.primary.name} returned an unusable answer: {exc}. Using local heuristic.")
            except Exception as exc:  # noqa: BLE001
                logger.warning(f"Advisor {self.primary.name} unavailable ({type(exc).__name__}: {exc}). Using local heuristic.")
        return await self.fallback.recommend(stock, telemetry, market)

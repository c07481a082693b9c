"""
Data models for events within the agent system.
"""

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from .enums import AgentType, InventoryEventType

STOCK_CHANGED = "inventory.stock_changed"
RESTOCK_STARTED = "restock.started"
RESTOCK_FINISHED = "restock.finished"
SYSTEM_EXCEPTION = "system.exception"


class AgentEvent(BaseModel):
    """Base event exchanged between agents on the event bus."""

    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    event_type: str
    payload: dict[str, Any]
    source: AgentType
    timestamp: datetime = Field(default_factory=datetime.now)


class InventoryEvent(BaseModel):
    """A single change to the tracked stock level"""

    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    event_type: InventoryEventType
    timestamp: datetime = Field(default_factory=datetime.now)
    item: str
    quantity: int
    stock_after: int = Field(ge=0)
    reference_id: str | None = None

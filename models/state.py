"""
Data models for representing agent state as seen by the dashboard.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from .enums import TriggerSource, WorkflowState
from .inventory import Recommendation


class ActivityEntry(BaseModel):
    """One line of the agent activity terminal."""

    timestamp: datetime = Field(default_factory=datetime.now)
    level: str = "INFO"
    message: str


class StateTransition(BaseModel):
    state: WorkflowState
    timestamp: datetime = Field(default_factory=datetime.now)


class WorkflowSnapshot(BaseModel):
    run_id: str
    trigger: TriggerSource
    state: WorkflowState
    history: list[StateTransition] = Field(default_factory=list)
    recommendation: Recommendation | None = None
    error: str | None = None
    fulfilled_quantity: int = 0


class AgentSnapshot(BaseModel):
    """Everything the dashboard renders for one agent instance."""

    item: str
    stock: int = Field(ge=0)
    is_restocking: bool
    state: WorkflowState
    active_run: WorkflowSnapshot | None = None
    last_run: WorkflowSnapshot | None = None
    activity: list[ActivityEntry] = Field(default_factory=list)

"""
Base class for restocking agents.
"""

import logging
from typing import Any

from models.enums import AgentType
from models.events import SYSTEM_EXCEPTION, AgentEvent
from utils.activity import ActivityLog
from utils.event_bus import EventBus

logger_base = logging.getLogger(__name__)


class BaseAgent:
    """Common wiring: identity, event bus and an activity history."""

    def __init__(
        self,
        agent_id: str,
        agent_type: AgentType,
        event_bus: EventBus,
        activity: ActivityLog | None = None,
    ):
        self.agent_id = agent_id
        self.agent_type = agent_type
        self.event_bus = event_bus
        if activity is None:
            activity = ActivityLog(mirror=logging.getLogger(type(self).__module__))
        self.activity = activity

    # Subclasses should override this to register for specific events
    def register_event_handlers(self) -> None:
        """Register for events this agent cares about"""
        pass

    async def publish_event(self, event_type: str, payload: dict[str, Any]) -> None:
        """Publish an event to the event bus"""
        if self.event_bus is None:
            logger_base.error(f"Agent {self.agent_id} has no event bus to publish to.")
            return
        event = AgentEvent(event_type=event_type, payload=payload, source=self.agent_type)
        await self.event_bus.publish(event)

    async def handle_exception(self, exception: Exception, context: dict[str, Any]) -> None:
        """Record an unexpected exception and announce it; never re-raises."""
        error_details = {
            "error_type": type(exception).__name__,
            "error_message": str(exception),
            "context": context,
            "agent_id": self.agent_id,
        }
        logger_base.error(
            f"Exception in {self.agent_type.value} agent ({self.agent_id}): {exception}",
            exc_info=exception,
        )
        self.activity.error(f"Unexpected error: {exception}")
        await self.publish_event(SYSTEM_EXCEPTION, {"error_details": error_details})

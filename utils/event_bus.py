"""
Simple asynchronous event bus for agent communication.
"""

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from models.events import AgentEvent

logger = logging.getLogger(__name__)

Handler = Callable[[AgentEvent], Coroutine[Any, Any, None]]


class EventBus:
    """In-process publish/subscribe hub shared by the agents of one event loop."""

    def __init__(self):
        self.subscribers: dict[str, list[Handler]] = {}

    def subscribe(self, event_type: str, callback: Handler) -> None:
        """Subscribe to an event type."""
        if not callable(callback):
            raise TypeError("Callback must be a callable async function.")
        handlers = self.subscribers.setdefault(event_type, [])
        if callback in handlers:
            logger.warning(f"Callback {_name(callback)} already subscribed to {event_type}")
            return
        handlers.append(callback)
        logger.debug(f"Callback {_name(callback)} subscribed to {event_type}")

    def unsubscribe(self, event_type: str, callback: Handler) -> None:
        """Unsubscribe a specific callback from an event type."""
        handlers = self.subscribers.get(event_type)
        if not handlers:
            return
        try:
            handlers.remove(callback)
        except ValueError:
            logger.warning(f"Callback {_name(callback)} not found for event type {event_type}")
            return
        if not handlers:
            del self.subscribers[event_type]

    async def publish(self, event: AgentEvent) -> None:
        """Deliver an event to every subscriber; handler errors are logged, never raised."""
        if not isinstance(event, AgentEvent):
            logger.error(f"Attempted to publish invalid event type: {type(event)}")
            return

        handlers = list(self.subscribers.get(event.event_type, []))
        logger.debug(f"Event published: {event.event_type} from {event.source.value} to {len(handlers)} handler(s)")
        if not handlers:
            return

        results = await asyncio.gather(*(handler(event) for handler in handlers), return_exceptions=True)
        for handler, result in zip(handlers, results):
            if isinstance(result, Exception):
                logger.error(
                    f"Error in subscriber callback '{_name(handler)}' for event {event.event_type}: {result}"
                )


def _name(callback: Any) -> str:
    return getattr(callback, "__name__", type(callback).__name__)

"""
Bounded, most-recent-first activity history rendered by the dashboard terminal.
"""

import logging
from collections import deque

from models.state import ActivityEntry

logger = logging.getLogger(__name__)


class ActivityLog:
    """Keeps the newest ``capacity`` entries, newest first, and mirrors them to a logger."""

    def __init__(self, capacity: int = 20, mirror: logging.Logger | None = None):
        if capacity <= 0:
            raise ValueError("Activity log capacity must be positive.")
        self.capacity = capacity
        self._entries: deque[ActivityEntry] = deque(maxlen=capacity)
        self._mirror = mirror or logger

    def add(self, message: str, level: int = logging.INFO) -> ActivityEntry:
        entry = ActivityEntry(level=logging.getLevelName(level), message=message)
        self._entries.appendleft(entry)
        self._mirror.log(level, message)
        return entry

    def info(self, message: str) -> ActivityEntry:
        return self.add(message, logging.INFO)

    def warning(self, message: str) -> ActivityEntry:
        return self.add(message, logging.WARNING)

    def error(self, message: str) -> ActivityEntry:
        return self.add(message, logging.ERROR)

    def entries(self) -> list[ActivityEntry]:
        return list(self._entries)

    def messages(self) -> list[str]:
        return [entry.message for entry in self._entries]

    def __len__(self) -> int:
        return len(self._entries)

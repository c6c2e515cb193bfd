"""Bounded, ordered log of recently broadcast chat events."""
from collections import deque
from typing import Deque, List

from .protocol import HistoryEvent

DEFAULT_HISTORY_SIZE = 200


class HistoryBuffer:
    """Oldest-first FIFO of history events.

    Appending at capacity evicts the oldest entry, so the buffer never holds
    more than ``capacity`` events.
    """

    def __init__(self, capacity: int = DEFAULT_HISTORY_SIZE) -> None:
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._events: Deque[HistoryEvent] = deque(maxlen=capacity)

    def append(self, event: HistoryEvent) -> HistoryEvent:
        self._events.append(event)
        return event

    def snapshot(self) -> List[HistoryEvent]:
        """Copy of the current contents, oldest first."""
        return list(self._events)

    def __len__(self) -> int:
        return len(self._events)

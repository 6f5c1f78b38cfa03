"""Base broadcaster for real-time order events.

A broadcaster delivers a named event to every client subscribed to any of the
given channels. Delivery is fire-and-forget: offline clients miss the event
and resynchronise by re-fetching.
"""

from abc import ABC, abstractmethod
from typing import Any


class Broadcaster(ABC):
    """Abstract base class for event broadcasters.

    Implementations may raise on transport failure; callers are expected to
    catch and log rather than let a failed broadcast affect committed state.
    """

    @abstractmethod
    async def publish(self, channels: list[str], event_name: str, payload: dict[str, Any]) -> None:
        """Publish an event to all subscribers of ``channels``.

        Args:
            channels: Channel (room) names to deliver to
            event_name: Event name, e.g. "order:created"
            payload: JSON-serialisable event body
        """

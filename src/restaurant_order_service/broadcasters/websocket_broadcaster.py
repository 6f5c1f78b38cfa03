"""In-process WebSocket broadcaster with named rooms."""

import asyncio
import logging
from typing import Any

from fastapi import WebSocket

from restaurant_order_service.broadcasters.base_broadcaster import Broadcaster

logger = logging.getLogger(__name__)


class WebSocketBroadcaster(Broadcaster):
    """Tracks connected WebSocket clients per room and fans events out to them.

    A client subscribed to several of the target rooms receives each event
    once. Sends to individual clients are independent and bounded by
    ``send_timeout`` seconds: a client whose socket fails or stalls is dropped
    from every room and the rest still receive the event.
    """

    def __init__(self, send_timeout: float = 5.0) -> None:
        self.rooms: dict[str, set[WebSocket]] = {}
        self.send_timeout = send_timeout
        self._lock = asyncio.Lock()

    async def join(self, websocket: WebSocket, room: str) -> None:
        async with self._lock:
            self.rooms.setdefault(room, set()).add(websocket)
        logger.info(f"Client joined {room} room")

    async def leave(self, websocket: WebSocket, room: str) -> None:
        async with self._lock:
            members = self.rooms.get(room)
            if members is not None:
                members.discard(websocket)
                if not members:
                    del self.rooms[room]
        logger.info(f"Client left {room} room")

    async def disconnect(self, websocket: WebSocket) -> None:
        """Remove a client from every room."""
        async with self._lock:
            for room in list(self.rooms):
                self.rooms[room].discard(websocket)
                if not self.rooms[room]:
                    del self.rooms[room]

    def subscriber_count(self, room: str) -> int:
        return len(self.rooms.get(room, ()))

    async def publish(self, channels: list[str], event_name: str, payload: dict[str, Any]) -> None:
        async with self._lock:
            members: set[WebSocket] = set()
            for channel in channels:
                members.update(self.rooms.get(channel, ()))
        recipients = list(members)

        message = {"event": event_name, "data": payload}
        results = await asyncio.gather(
            *(
                asyncio.wait_for(websocket.send_json(message), self.send_timeout)
                for websocket in recipients
            ),
            return_exceptions=True,
        )

        for websocket, result in zip(recipients, results):
            if isinstance(result, TimeoutError):
                logger.warning(f"Dropping client that stalled on {event_name}")
                await self.disconnect(websocket)
            elif isinstance(result, Exception):
                logger.warning(f"Dropping client after failed send of {event_name}: {result}")
                await self.disconnect(websocket)

        logger.debug(f"Published {event_name} to {len(recipients)} clients on {channels}")

"""Room-based WebSocket fan-out for live bus positions."""

from __future__ import annotations

import logging
from typing import Any, Dict, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)

LOCATION_UPDATE_EVENT = "bus-location-update"


def bus_room(bus_id: int) -> str:
    return f"bus-{bus_id}"


class TrackingHub:
    """
    Keeps WebSocket subscribers grouped by broadcast room.

    Delivery is best effort: there is no replay, ordering or acknowledgement,
    and a subscriber whose send fails is dropped from every room.
    """

    def __init__(self) -> None:
        self._rooms: Dict[str, Set[WebSocket]] = {}

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()

    def join(self, websocket: WebSocket, room: str) -> None:
        self._rooms.setdefault(room, set()).add(websocket)
        logger.info("Subscriber joined %s", room)

    def leave(self, websocket: WebSocket, room: str) -> None:
        members = self._rooms.get(room)
        if not members:
            return
        members.discard(websocket)
        if not members:
            del self._rooms[room]
        logger.info("Subscriber left %s", room)

    def disconnect(self, websocket: WebSocket) -> None:
        """Remove a socket from every room it joined."""
        for room in list(self._rooms):
            self.leave(websocket, room)

    def subscribers(self, room: str) -> int:
        return len(self._rooms.get(room, ()))

    async def emit(self, room: str, event: str, data: Dict[str, Any]) -> int:
        """Send ``{"event", "data"}`` to every subscriber of ``room``; returns the delivered count."""
        delivered = 0
        failed = []
        for websocket in list(self._rooms.get(room, ())):
            try:
                await websocket.send_json({"event": event, "data": data})
                delivered += 1
            except Exception as exc:  # pylint: disable=broad-except
                logger.warning("Dropping subscriber of %s after failed send: %s", room, exc)
                failed.append(websocket)

        for websocket in failed:
            self.disconnect(websocket)
        return delivered


# Shared hub for the API process
tracking_hub = TrackingHub()

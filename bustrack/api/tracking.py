"""WebSocket channel for live bus tracking."""

import json
import logging
from typing import Any, Optional, Tuple

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ..services.tracking_hub import bus_room, tracking_hub

router = APIRouter()
logger = logging.getLogger(__name__)

COMMAND_ERROR = "Expected action join|leave and integer bus_id"


def parse_command(raw: str) -> Optional[Tuple[str, int]]:
    """Return ``(action, bus_id)`` for a well-formed command, else ``None``."""
    try:
        message: Any = json.loads(raw)
    except ValueError:
        return None
    if not isinstance(message, dict):
        return None

    action = message.get("action")
    bus_id = message.get("bus_id")
    # bool is an int subclass
    if action not in ("join", "leave") or not isinstance(bus_id, int) or isinstance(bus_id, bool):
        return None
    return action, bus_id


@router.websocket("/tracking")
async def tracking_socket(websocket: WebSocket):
    """
    Subscribe to live position updates.

    Clients send ``{"action": "join", "bus_id": 7}`` or
    ``{"action": "leave", "bus_id": 7}``; the server answers each command with
    an acknowledgement and then pushes ``bus-location-update`` events for
    every bus the client joined. Anything else, malformed JSON included, is
    answered with an ``error`` event and the socket stays open.
    """
    await tracking_hub.connect(websocket)
    try:
        while True:
            command = parse_command(await websocket.receive_text())
            if command is None:
                await websocket.send_json({"event": "error", "data": {"message": COMMAND_ERROR}})
                continue

            action, bus_id = command
            room = bus_room(bus_id)
            if action == "join":
                tracking_hub.join(websocket, room)
            else:
                tracking_hub.leave(websocket, room)
            await websocket.send_json({"event": action, "data": {"room": room}})
    except WebSocketDisconnect:
        pass
    finally:
        tracking_hub.disconnect(websocket)
        logger.debug("Tracking socket closed")

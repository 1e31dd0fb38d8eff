# flashdeck/realtime/manager.py
import logging
from typing import Any, Set

from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder

logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    Every open /ws session. broadcast() is best-effort: no retry and no replay,
    a client that misses an event catches up on its next refetch.
    """

    def __init__(self):
        self.active_connections: Set[WebSocket] = set()

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self.active_connections.add(websocket)
        logger.info(f"WebSocket client connected ({len(self.active_connections)} open)")

    def disconnect(self, websocket: WebSocket) -> None:
        if websocket in self.active_connections:
            self.active_connections.discard(websocket)
            logger.info(f"WebSocket client disconnected ({len(self.active_connections)} open)")

    async def send(self, websocket: WebSocket, event_type: str, data: Any) -> None:
        await websocket.send_json({"type": event_type, "data": jsonable_encoder(data)})

    async def broadcast(self, event_type: str, data: Any = None) -> int:
        """Returns how many sessions the event was handed to."""
        message = {"type": event_type, "data": jsonable_encoder(data if data is not None else {})}
        delivered = 0
        # copy: a failed send shrinks the set
        for websocket in list(self.active_connections):
            try:
                await websocket.send_json(message)
                delivered += 1
            except Exception as e:
                logger.warning(f"Dropping WebSocket client after failed send of '{event_type}': {e}")
                self.disconnect(websocket)
        logger.debug(f"Broadcast '{event_type}' to {delivered} client(s)")
        return delivered

"""
Real-time push over WebSockets, addressed by room.

A room is the recipient's account id. Delivery is best effort and
at-most-once: nothing is queued for absent clients and a failed send only
drops that connection. Clients re-fetch through the HTTP listing endpoints to
converge, so missed or duplicated events are harmless.
"""
import logging
from collections import defaultdict
from typing import Any, Dict, List

from fastapi import WebSocket


logger = logging.getLogger(__name__)

ORDER_STATUS_UPDATED = "orderStatusUpdated"
LOW_STOCK_ALERT = "lowStockAlert"


class ConnectionManager:
    def __init__(self) -> None:
        # room -> connections in join order
        self.rooms: Dict[str, List[WebSocket]] = defaultdict(list)

    def connect(self, room: str, websocket: WebSocket) -> None:
        self.rooms[room].append(websocket)
        logger.info("socket joined room=%s connections=%s", room, len(self.rooms[room]))

    def disconnect(self, room: str, websocket: WebSocket) -> None:
        connections = self.rooms.get(room)
        if not connections:
            return
        if websocket in connections:
            connections.remove(websocket)
        if not connections:
            self.rooms.pop(room, None)
        logger.info("socket left room=%s", room)

    def subscriber_count(self, room: str) -> int:
        return len(self.rooms.get(room, ()))

    async def publish(self, room: str, event: str, data: Dict[str, Any]) -> int:
        """Send ``{"event", "data"}`` to every connection in the room; returns deliveries."""
        delivered = 0
        for websocket in list(self.rooms.get(room, ())):
            try:
                await websocket.send_json({"event": event, "data": data})
                delivered += 1
            except Exception:
                logger.warning("dropping socket after failed send room=%s event=%s", room, event, exc_info=True)
                self.disconnect(room, websocket)
        logger.debug("published event=%s room=%s delivered=%s", event, room, delivered)
        return delivered


manager = ConnectionManager()

import logging
from typing import Hashable

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionManager:
    def __init__(self):
        self.active_connections: dict[Hashable, list[WebSocket]] = {}

    async def connect(self, channel: Hashable, websocket: WebSocket):
        await websocket.accept()
        self.active_connections.setdefault(channel, []).append(websocket)

    async def disconnect(self, channel: Hashable, websocket: WebSocket):
        connections = self.active_connections.get(channel, [])
        if websocket in connections:
            connections.remove(websocket)
        if not connections:
            self.active_connections.pop(channel, None)

    def count(self, channel: Hashable) -> int:
        return len(self.active_connections.get(channel, []))

    async def close_all(self, code: int = 1001):
        for channel, connections in list(self.active_connections.items()):
            for ws in list(connections):
                try:
                    await ws.close(code=code)
                except RuntimeError as e:
                    logger.debug(f"Socket on {channel} already closed: {e}")
        self.active_connections.clear()


manager = ConnectionManager()

import logging
from typing import Dict, List

from fastapi import WebSocket


logger = logging.getLogger(__name__)


class ConnectionManager:

    def __init__(self) -> None:
        self.active_connections: Dict[str, List[WebSocket]] = {}

    async def connect(self, user_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        if user_id not in self.active_connections:
            self.active_connections[user_id] = []
        self.active_connections[user_id].append(websocket)

    def disconnect(self, user_id: str, websocket: WebSocket) -> None:
        if user_id in self.active_connections:
            try:
                self.active_connections[user_id].remove(websocket)
            except ValueError:
                pass
            if not self.active_connections[user_id]:
                del self.active_connections[user_id]

    async def send_personal_message(self, receiver_id: str, message: str) -> None:
        for conn in list(self.active_connections.get(receiver_id, [])):
            try:
                await conn.send_text(message)
            except Exception:
                # a half-closed socket must not starve the remaining receivers
                logger.warning("Dropping dead socket of user %s", receiver_id, exc_info=True)
                self.disconnect(receiver_id, conn)

    async def broadcast(self, message: str, exclude: str | None = None) -> None:
        for user_id in list(self.active_connections):
            if user_id != exclude:
                await self.send_personal_message(user_id, message)

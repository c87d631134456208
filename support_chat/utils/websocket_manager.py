import json
from typing import Any, Dict, List, Tuple

from fastapi import WebSocket

from support_chat.services.chat_service import ChatSession


class ConnectionManager:

    def __init__(self) -> None:
        self.active_connections: Dict[str, List[Tuple[WebSocket, ChatSession]]] = {}

    async def connect(self, user_id: str, websocket: WebSocket, session: ChatSession) -> None:
        await websocket.accept()
        if user_id not in self.active_connections:
            self.active_connections[user_id] = []
        self.active_connections[user_id].append((websocket, session))

    async def disconnect(self, user_id: str, websocket: WebSocket) -> None:
        entries = self.active_connections.get(user_id, [])
        for entry in list(entries):
            if entry[0] is websocket:
                entries.remove(entry)
                await entry[1].close()
        if user_id in self.active_connections and not self.active_connections[user_id]:
            del self.active_connections[user_id]

    async def send_json(self, websocket: WebSocket, payload: Dict[str, Any]) -> None:
        await websocket.send_text(json.dumps(payload))

    async def close_all(self) -> None:
        entries = [entry for conns in self.active_connections.values() for entry in conns]
        self.active_connections.clear()
        for _, session in entries:
            await session.close()

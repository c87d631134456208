import json
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from support_chat.core.config import settings
from support_chat.dependencies import get_message_store, get_profile_lookup
from support_chat.models.conversation import Actor
from support_chat.repositories.ports import MessageStorePort, ProfileLookupPort
from support_chat.schemas.message import MessageOut, SendMessageRequest, SendMessageResponse
from support_chat.services.chat_service import ChatSession
from support_chat.services.composer import Composer, SendContext
from support_chat.utils.websocket_manager import ConnectionManager


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/messages", tags=["chat"])
manager = ConnectionManager()


@router.websocket("/ws/{user_id}")
async def chat_socket(
    websocket: WebSocket,
    user_id: str,
    role: str = "customer",
    display_name: str = "",
    store: MessageStorePort = Depends(get_message_store),
    profiles: ProfileLookupPort = Depends(get_profile_lookup),
):
    # identity comes from the caller; authentication happens upstream
    actor = Actor(user_id=user_id, display_name=display_name or user_id, role="admin" if role == "admin" else "customer")

    async def push_state(session: ChatSession) -> None:
        await manager.send_json(websocket, {"type": "state", **session.snapshot()})

    session = ChatSession(actor, store, profiles, on_change=push_state, cache_profiles=settings.PROFILE_CACHE_ENABLED)
    await manager.connect(user_id, websocket, session)
    try:
        await session.open()
        await push_state(session)
        while True:
            data = await websocket.receive_text()
            try:
                msg = json.loads(data)
            except ValueError:
                await manager.send_json(websocket, {"type": "error", "detail": "Invalid JSON"})
                continue
            if not isinstance(msg, dict):
                await manager.send_json(websocket, {"type": "error", "detail": "Invalid frame"})
                continue
            await _handle_frame(websocket, session, msg)
    except WebSocketDisconnect:
        logger.info("Chat socket disconnected", extra={"user_id": user_id})
    finally:
        await manager.disconnect(user_id, websocket)


async def _handle_frame(websocket: WebSocket, session: ChatSession, msg: Dict[str, Any]) -> None:
    # Expect msg = {"type": "select", "user_id"} | {"type": "input", "text"} | {"type": "send", "text"?}
    kind = msg.get("type")
    if kind == "select":
        if not await session.select_conversation(str(msg.get("user_id") or "")):
            await manager.send_json(websocket, {"type": "error", "detail": "Cannot select that conversation"})
        return
    if kind == "input":
        session.set_input(str(msg.get("text") or ""))
        return
    if kind == "send":
        text = msg.get("text")
        sent = await session.send(str(text) if text is not None else None)
        if sent is not None:
            await manager.send_json(websocket, {"type": "ack", "message_id": sent.id})
        return
    await manager.send_json(websocket, {"type": "error", "detail": f"Unknown frame type: {kind}"})


@router.post("", response_model=SendMessageResponse)
async def send_message(body: SendMessageRequest, store: MessageStorePort = Depends(get_message_store)):
    actor = Actor(user_id=body.sender_id, display_name=body.sender_name or body.sender_id, role=body.role)
    message = await Composer(store).send(body.text, SendContext(actor=actor, selected=body.to))
    if message is None:
        return SendMessageResponse(sent=False)
    return SendMessageResponse(sent=True, message=MessageOut.from_message(message))

import logging

from fastapi import APIRouter, Depends, HTTPException

from support_chat.core.exceptions import StoreError
from support_chat.dependencies import get_message_store, get_profile_resolver
from support_chat.repositories.ports import MessageStorePort
from support_chat.schemas.message import ConversationSummaryOut, InboxOut, MessageOut, TranscriptOut
from support_chat.services.inbox import ProfileResolver, fetch_inbox
from support_chat.services.transcript import fetch_transcript


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/conversations", tags=["chat"])


@router.get("", response_model=InboxOut)
async def list_conversations(
    store: MessageStorePort = Depends(get_message_store),
    resolver: ProfileResolver = Depends(get_profile_resolver),
):
    try:
        summaries = await fetch_inbox(store, resolver)
    except StoreError as exc:
        logger.exception("Failed to load inbox")
        raise HTTPException(status_code=503, detail="Message store unavailable") from exc
    return InboxOut(conversations=[ConversationSummaryOut.from_summary(s) for s in summaries])


@router.get("/{user_id}/messages", response_model=TranscriptOut)
async def list_messages(user_id: str, store: MessageStorePort = Depends(get_message_store)):
    try:
        messages = await fetch_transcript(store, user_id)
    except StoreError as exc:
        logger.exception("Failed to load transcript", extra={"other_party_id": user_id})
        raise HTTPException(status_code=503, detail="Message store unavailable") from exc
    return TranscriptOut(messages=[MessageOut.from_message(m) for m in messages])

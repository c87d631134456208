import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, FrozenSet, Iterable, List, Mapping, Optional, TypedDict

from support_chat.core.config import SUPPORT_ID


logger = logging.getLogger(__name__)


class MessageDocument(TypedDict, total=False):
    _id: str
    senderId: str
    senderName: str
    receiverId: str
    participants: List[str]
    message: str
    # null until the store resolves it
    createdAt: Optional[datetime]
    isRead: bool


@dataclass(frozen=True)
class Message:
    id: str
    sender_id: str
    sender_name: str
    receiver_id: str
    participants: FrozenSet[str]
    text: str
    created_at: Optional[datetime] = None
    is_read: bool = False

    @property
    def is_resolved(self) -> bool:
        return self.created_at is not None

    @property
    def other_party(self) -> str:
        key = conversation_key(self.participants)
        if key is None:
            raise ValueError(f"Message {self.id} does not belong to a support conversation")
        return key


def conversation_key(participants: Iterable[str]) -> Optional[str]:
    """Return the non-support member of a two-party support pair, or None."""
    members = set(participants)
    if SUPPORT_ID not in members:
        return None
    others = members - {SUPPORT_ID}
    if len(others) != 1:
        return None
    return next(iter(others))


def conversation_pair(other_party_id: str) -> FrozenSet[str]:
    return frozenset({other_party_id, SUPPORT_ID})


def new_message_document(
    sender_id: str,
    sender_name: str,
    receiver_id: str,
    other_party_id: str,
    text: str,
) -> MessageDocument:
    return {
        "senderId": sender_id,
        "senderName": sender_name,
        "receiverId": receiver_id,
        "participants": [other_party_id, SUPPORT_ID],
        "message": text,
        "createdAt": None,
        "isRead": False,
    }


def message_from_document(doc: Mapping[str, Any]) -> Optional[Message]:
    doc_id = str(doc.get("_id", ""))
    raw = doc.get("participants") or []
    participants = frozenset(str(p) for p in raw)
    if len(raw) != 2 or conversation_key(participants) is None:
        logger.warning("Skipping message with invalid participants", extra={"message_id": doc_id})
        return None
    text = doc.get("message")
    if not isinstance(text, str) or not text.strip():
        logger.warning("Skipping message with empty text", extra={"message_id": doc_id})
        return None
    created_at = doc.get("createdAt")
    return Message(
        id=doc_id,
        sender_id=str(doc.get("senderId", "")),
        sender_name=str(doc.get("senderName") or ""),
        receiver_id=str(doc.get("receiverId", "")),
        participants=participants,
        text=text,
        created_at=created_at if isinstance(created_at, datetime) else None,
        is_read=bool(doc.get("isRead", False)),
    )


def messages_from_documents(docs: Iterable[Mapping[str, Any]]) -> List[Message]:
    messages = []
    for doc in docs:
        message = message_from_document(doc)
        if message is not None:
            messages.append(message)
    return messages

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from support_chat.models.conversation import ConversationSummary
from support_chat.models.message import Message
from support_chat.services.inbox import InboxState
from support_chat.services.transcript import TranscriptState


Role = Literal["admin", "customer"]


class MessageOut(BaseModel):

    id: str
    sender_id: str
    sender_name: str
    receiver_id: str
    participants: List[str]
    text: str
    created_at: Optional[datetime] = None
    is_read: bool = False

    @classmethod
    def from_message(cls, message: Message) -> "MessageOut":
        return cls(
            id=message.id,
            sender_id=message.sender_id,
            sender_name=message.sender_name,
            receiver_id=message.receiver_id,
            participants=sorted(message.participants),
            text=message.text,
            created_at=message.created_at,
            is_read=message.is_read,
        )


class ConversationSummaryOut(BaseModel):

    other_party_id: str
    display_name: str
    email: str
    last_message: MessageOut
    unread_count: int = 0

    @classmethod
    def from_summary(cls, summary: ConversationSummary) -> "ConversationSummaryOut":
        return cls(
            other_party_id=summary.other_party_id,
            display_name=summary.display_name,
            email=summary.email,
            last_message=MessageOut.from_message(summary.last_message),
            unread_count=summary.unread_count,
        )


class InboxOut(BaseModel):

    conversations: List[ConversationSummaryOut] = Field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def from_state(cls, state: InboxState) -> "InboxOut":
        return cls(
            conversations=[ConversationSummaryOut.from_summary(s) for s in state.conversations],
            error=state.error,
        )


class TranscriptOut(BaseModel):

    loading: bool = False
    messages: List[MessageOut] = Field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def from_state(cls, state: TranscriptState) -> "TranscriptOut":
        return cls(
            loading=state.loading,
            messages=[MessageOut.from_message(m) for m in state.messages],
            error=state.error,
        )


class SendMessageRequest(BaseModel):

    sender_id: str = Field(min_length=1)
    sender_name: str = ""
    role: Role = "customer"
    text: str
    # selected customer; required when role is admin
    to: Optional[str] = None


class SendMessageResponse(BaseModel):

    sent: bool
    message: Optional[MessageOut] = None

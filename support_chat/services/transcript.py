from dataclasses import dataclass, replace
from datetime import datetime
from typing import FrozenSet, Iterable, List, Optional, Tuple

from support_chat.models.message import Message, conversation_pair
from support_chat.repositories.ports import MessageStorePort


@dataclass(frozen=True)
class TranscriptState:
    loading: bool = False
    messages: Tuple[Message, ...] = ()
    error: Optional[str] = None


def _order_key(message: Message) -> Tuple[bool, float]:
    # pending messages stay at the bottom until the store resolves them
    created_at: Optional[datetime] = message.created_at
    if created_at is None:
        return (True, 0.0)
    return (False, created_at.timestamp())


def select_transcript(batch: Iterable[Message], pair: FrozenSet[str]) -> List[Message]:
    members = [m for m in batch if m.participants == pair]
    return sorted(members, key=_order_key)


def apply_batch(state: TranscriptState, batch: Iterable[Message], pair: FrozenSet[str]) -> TranscriptState:
    return TranscriptState(loading=False, messages=tuple(select_transcript(batch, pair)), error=None)


def apply_error(state: TranscriptState, exc: Exception) -> TranscriptState:
    return replace(state, loading=False, error=str(exc) or exc.__class__.__name__)


async def fetch_transcript(store: MessageStorePort, other_party_id: str) -> List[Message]:
    return select_transcript(await store.query(other_party_id), conversation_pair(other_party_id))


class MessageStream:

    def __init__(self) -> None:
        self.other_party_id: Optional[str] = None
        self.state = TranscriptState()

    @property
    def loading(self) -> bool:
        return self.state.loading

    @property
    def messages(self) -> Tuple[Message, ...]:
        return self.state.messages

    @property
    def error(self) -> Optional[str]:
        return self.state.error

    def open(self, other_party_id: str) -> None:
        self.other_party_id = other_party_id
        self.state = TranscriptState(loading=True)

    def apply_batch(self, batch: Iterable[Message]) -> None:
        if self.other_party_id is None:
            return
        self.state = apply_batch(self.state, batch, conversation_pair(self.other_party_id))

    def apply_error(self, exc: Exception) -> None:
        self.state = apply_error(self.state, exc)

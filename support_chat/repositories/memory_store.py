import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from support_chat.core.config import MESSAGES_CHANNEL
from support_chat.core.exceptions import StoreError
from support_chat.models.conversation import Profile
from support_chat.models.message import Message, MessageDocument, message_from_document, messages_from_documents
from support_chat.models.user import profile_from_document
from support_chat.repositories.live_query import LiveQuery
from support_chat.repositories.ports import ListenHandle, MessageStorePort, OnBatch, OnError, ProfileLookupPort
from support_chat.utils.realtime_bus import Bus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MemoryMessageStore(MessageStorePort):
    def __init__(self, bus: Bus, auto_resolve: bool = True, clock: Callable[[], datetime] = _utcnow) -> None:
        self._bus = bus
        self._docs: List[Dict[str, Any]] = []
        self._auto_resolve = auto_resolve
        self._clock = clock
        self._last_resolved: Optional[datetime] = None

    async def append(self, doc: MessageDocument) -> Message:
        payload: Dict[str, Any] = dict(doc)
        payload["_id"] = uuid.uuid4().hex
        payload["createdAt"] = None
        payload["participants"] = list(doc.get("participants", []))
        message = message_from_document(payload)
        if message is None:
            raise StoreError("Message failed validation")
        self._docs.append(payload)
        await self._bus.publish(MESSAGES_CHANNEL, payload["_id"])
        if self._auto_resolve:
            await self.resolve(payload["_id"])
        return message

    async def resolve(self, message_id: str) -> None:
        """Assign the server timestamp to a pending message."""
        for payload in self._docs:
            if payload["_id"] == message_id and payload["createdAt"] is None:
                now = self._clock()
                # keep server time non-decreasing
                if self._last_resolved is not None and now < self._last_resolved:
                    now = self._last_resolved
                self._last_resolved = now
                payload["createdAt"] = now
                await self._bus.publish(MESSAGES_CHANNEL, message_id)
                return

    async def query(self, participant: str) -> List[Message]:
        items = [dict(d) for d in self._docs if participant in d.get("participants", [])]
        # same order as the mongo query: pending first, then by server time
        items.sort(key=_created_at_key)
        return messages_from_documents(items)

    async def listen(self, participant: str, on_update: OnBatch, on_error: OnError) -> ListenHandle:
        live = LiveQuery(lambda: self.query(participant), on_update, on_error, self._bus)
        return await live.start()

    def __len__(self) -> int:
        return len(self._docs)


class MemoryProfileDirectory(ProfileLookupPort):
    def __init__(self) -> None:
        self._users: Dict[str, Dict[str, Any]] = {}

    def add_user(self, user_id: str, display_name: Optional[str] = None, email: Optional[str] = None) -> None:
        self._users[user_id] = {"_id": user_id, "displayName": display_name, "email": email}

    async def get_profile(self, user_id: str) -> Optional[Profile]:
        user = self._users.get(user_id)
        if user is None:
            return None
        return profile_from_document(user)


def _created_at_key(doc: Dict[str, Any]) -> Tuple[int, float]:
    created_at = doc.get("createdAt")
    if created_at is None:
        return (0, 0.0)
    return (1, created_at.timestamp())

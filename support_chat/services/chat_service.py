import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from support_chat.core.config import SUPPORT_ID
from support_chat.models.conversation import Actor
from support_chat.models.message import Message
from support_chat.repositories.ports import MessageStorePort, ProfileLookupPort
from support_chat.schemas.message import InboxOut, TranscriptOut
from support_chat.services.composer import Composer, InputBuffer, SendContext
from support_chat.services.inbox import ConversationIndex, ProfileResolver
from support_chat.services.subscriptions import INBOX_VIEW, TRANSCRIPT_VIEW, SubscriptionHandle, SubscriptionManager
from support_chat.services.transcript import MessageStream


logger = logging.getLogger(__name__)

OnChange = Callable[["ChatSession"], Awaitable[None]]


class ChatSession:
    """
    One open messaging surface: the support inbox plus the selected
    transcript for a support actor, or the actor's own transcript with
    support for a customer.
    """

    def __init__(
        self,
        actor: Actor,
        store: MessageStorePort,
        profiles: ProfileLookupPort,
        on_change: Optional[OnChange] = None,
        cache_profiles: bool = True,
    ) -> None:
        self.actor = actor
        self._manager = SubscriptionManager(store)
        self._on_change = on_change
        self.inbox = ConversationIndex(ProfileResolver(profiles, cache_enabled=cache_profiles))
        self.transcript = MessageStream()
        self.input = InputBuffer()
        self._composer = Composer(store, self.input)
        self.selected: Optional[str] = None
        self._inbox_handle: Optional[SubscriptionHandle] = None
        self._transcript_handle: Optional[SubscriptionHandle] = None
        self._closed = False

    @property
    def subscriptions(self) -> SubscriptionManager:
        return self._manager

    @property
    def closed(self) -> bool:
        return self._closed

    async def open(self) -> None:
        if self._closed:
            raise RuntimeError("Chat session already closed")
        if self.actor.is_support:
            self._inbox_handle = await self._manager.open(
                INBOX_VIEW, SUPPORT_ID, self._on_inbox_batch, self._on_inbox_error
            )
        else:
            await self._open_transcript(self.actor.transcript_peer(self.selected))
        logger.info("Chat session opened", extra={"user_id": self.actor.user_id})

    async def select_conversation(self, other_party_id: str) -> bool:
        if self._closed or not self.actor.is_support:
            return False
        if not other_party_id or other_party_id == SUPPORT_ID:
            return False
        self.selected = other_party_id
        await self._open_transcript(self.actor.transcript_peer(other_party_id))
        return True

    async def _open_transcript(self, other_party_id: str) -> None:
        # the old transcript query must be gone before the new one can deliver
        await self._manager.close(self._transcript_handle)
        self._transcript_handle = None
        if self._closed:
            return
        self.transcript.open(other_party_id)
        await self._notify()
        if self._closed:
            return
        self._transcript_handle = await self._manager.open(
            TRANSCRIPT_VIEW, other_party_id, self._on_transcript_batch, self._on_transcript_error
        )

    def set_input(self, text: str) -> None:
        self.input.set(text)

    async def send(self, text: Optional[str] = None) -> Optional[Message]:
        if self._closed:
            return None
        message = await self._composer.send(text, SendContext(actor=self.actor, selected=self.selected))
        await self._notify()
        return message

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._manager.close_all()
        self._inbox_handle = None
        self._transcript_handle = None
        logger.info("Chat session closed", extra={"user_id": self.actor.user_id})

    async def _on_inbox_batch(self, handle: SubscriptionHandle, batch: List[Message]) -> None:
        if self._closed:
            return
        if await self.inbox.apply_batch(batch, lambda: self._manager.is_current(handle)):
            await self._notify()

    async def _on_inbox_error(self, handle: SubscriptionHandle, exc: Exception) -> None:
        if self._closed:
            return
        logger.error("Inbox subscription failed: %s", exc, extra={"generation": handle.generation})
        self.inbox.apply_error(exc)
        await self._notify()

    async def _on_transcript_batch(self, handle: SubscriptionHandle, batch: List[Message]) -> None:
        if self._closed or handle.filter_spec != self.transcript.other_party_id:
            return
        self.transcript.apply_batch(batch)
        await self._notify()

    async def _on_transcript_error(self, handle: SubscriptionHandle, exc: Exception) -> None:
        if self._closed:
            return
        logger.error(
            "Transcript subscription failed: %s", exc,
            extra={"generation": handle.generation, "other_party_id": handle.filter_spec},
        )
        self.transcript.apply_error(exc)
        await self._notify()

    async def _notify(self) -> None:
        if self._closed or self._on_change is None:
            return
        try:
            await self._on_change(self)
        except Exception:
            logger.exception("Failed to deliver chat state", extra={"user_id": self.actor.user_id})

    def snapshot(self) -> Dict[str, Any]:
        return {
            "role": self.actor.role,
            "inbox": InboxOut.from_state(self.inbox.state).model_dump(mode="json") if self.actor.is_support else None,
            "selected": self.selected,
            "transcript": TranscriptOut.from_state(self.transcript.state).model_dump(mode="json"),
            "input": self.input.text,
        }

import logging
from dataclasses import dataclass
from typing import Optional

from support_chat.core.config import SUPPORT_ID
from support_chat.core.exceptions import StoreError
from support_chat.models.conversation import Actor
from support_chat.models.message import Message, new_message_document
from support_chat.repositories.ports import MessageStorePort


logger = logging.getLogger(__name__)


@dataclass
class InputBuffer:
    text: str = ""

    def set(self, text: str) -> None:
        self.text = text

    def clear(self) -> None:
        self.text = ""


@dataclass(frozen=True)
class SendContext:
    actor: Actor
    selected: Optional[str] = None


class Composer:

    def __init__(self, store: MessageStorePort, buffer: Optional[InputBuffer] = None) -> None:
        self._store = store
        self.buffer = buffer if buffer is not None else InputBuffer()

    async def send(self, text: Optional[str], context: SendContext) -> Optional[Message]:
        """
        Append a message for the actor's conversation.

        Returns None without writing when there is nothing to send: blank
        text, or a support actor with no conversation selected. A failed
        write is logged and also returns None; the buffer is only cleared
        after a successful write.
        """
        draft = self.buffer.text if text is None else text
        if not draft or not draft.strip():
            return None

        actor = context.actor
        if actor.is_support:
            if not context.selected:
                logger.debug("Support send ignored, no conversation selected", extra={"user_id": actor.user_id})
                return None
            other_party_id = context.selected
            receiver_id = context.selected
        else:
            other_party_id = actor.user_id
            receiver_id = SUPPORT_ID
        if other_party_id == SUPPORT_ID:
            logger.warning("Refusing to address the support identity as a customer", extra={"user_id": actor.user_id})
            return None

        doc = new_message_document(
            sender_id=actor.user_id,
            sender_name=actor.display_name,
            receiver_id=receiver_id,
            other_party_id=other_party_id,
            text=draft,
        )
        try:
            message = await self._store.append(doc)
        except StoreError:
            logger.exception("Error sending message", extra={"user_id": actor.user_id, "other_party_id": other_party_id})
            return None

        self.buffer.clear()
        logger.info("Message sent", extra={"message_id": message.id, "other_party_id": message.other_party})
        return message

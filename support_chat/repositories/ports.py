from abc import ABC, abstractmethod
from typing import Awaitable, Callable, List, Optional, Protocol

from support_chat.models.conversation import Profile
from support_chat.models.message import Message, MessageDocument


OnBatch = Callable[[List[Message]], Awaitable[None]]
OnError = Callable[[Exception], Awaitable[None]]


class ListenHandle(Protocol):

    async def close(self) -> None:
        ...


class MessageStorePort(ABC):
    @abstractmethod
    async def append(self, doc: MessageDocument) -> Message:
        """Create a message; the store assigns the id and resolves createdAt."""
        raise NotImplementedError

    @abstractmethod
    async def query(self, participant: str) -> List[Message]:
        """All messages whose participants contain `participant`, oldest first."""
        raise NotImplementedError

    @abstractmethod
    async def listen(self, participant: str, on_update: OnBatch, on_error: OnError) -> ListenHandle:
        """
        Live version of query(): delivers the full current result set once
        after opening and again after every change, until closed.
        """
        raise NotImplementedError


class ProfileLookupPort(ABC):
    @abstractmethod
    async def get_profile(self, user_id: str) -> Optional[Profile]:
        """Return None for an unknown user; raise ProfileLookupError on failure."""
        raise NotImplementedError

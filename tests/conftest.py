import asyncio
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

import pytest

from support_chat.core.exceptions import ProfileLookupError, StoreError
from support_chat.models.conversation import Profile
from support_chat.models.message import Message, MessageDocument, conversation_pair
from support_chat.repositories.memory_store import MemoryMessageStore, MemoryProfileDirectory
from support_chat.repositories.ports import MessageStorePort, OnBatch, OnError
from support_chat.utils.realtime_bus import LocalBus


BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class FakeListener:

    def __init__(self, participant: str, on_update: OnBatch, on_error: OnError) -> None:
        self.participant = participant
        self.on_update = on_update
        self.on_error = on_error
        self.closed = False

    async def close(self) -> None:
        self.closed = True


class ControlledStore(MessageStorePort):
    """Store whose live queries only deliver when the test pushes a batch."""

    def __init__(self) -> None:
        self.listeners: List[FakeListener] = []
        self.appended: List[MessageDocument] = []
        self.fail_listen = False

    async def append(self, doc: MessageDocument) -> Message:
        self.appended.append(doc)
        return Message(
            id=f"m{len(self.appended)}",
            sender_id=doc["senderId"],
            sender_name=doc["senderName"],
            receiver_id=doc["receiverId"],
            participants=frozenset(doc["participants"]),
            text=doc["message"],
        )

    async def query(self, participant: str) -> List[Message]:
        return []

    async def listen(self, participant: str, on_update: OnBatch, on_error: OnError) -> FakeListener:
        if self.fail_listen:
            raise StoreError("listen refused")
        listener = FakeListener(participant, on_update, on_error)
        self.listeners.append(listener)
        return listener

    def latest(self, participant: str) -> FakeListener:
        return [l for l in self.listeners if l.participant == participant][-1]


class FailingStore(ControlledStore):

    async def append(self, doc: MessageDocument) -> Message:
        raise StoreError("write rejected")


class FlakyProfiles(MemoryProfileDirectory):

    def __init__(self, failing: Optional[set] = None) -> None:
        super().__init__()
        self.failing = failing or set()
        self.calls: List[str] = []

    async def get_profile(self, user_id: str) -> Optional[Profile]:
        self.calls.append(user_id)
        if user_id in self.failing:
            raise ProfileLookupError(f"lookup failed for {user_id}")
        return await super().get_profile(user_id)


class GatedProfiles(MemoryProfileDirectory):
    """Profile lookups block until the test opens the gate."""

    def __init__(self) -> None:
        super().__init__()
        self.gate = asyncio.Event()
        self.started = asyncio.Event()

    async def get_profile(self, user_id: str) -> Optional[Profile]:
        self.started.set()
        await self.gate.wait()
        return await super().get_profile(user_id)


@pytest.fixture
def bus():
    return LocalBus()


@pytest.fixture
def store(bus):
    ticks = {"n": 0}

    def clock():
        ticks["n"] += 1
        return BASE_TIME + timedelta(seconds=ticks["n"])

    return MemoryMessageStore(bus, clock=clock)


@pytest.fixture
def profiles():
    directory = FlakyProfiles()
    directory.add_user("u1", "Alice", "alice@example.com")
    directory.add_user("u2", "Bob", "bob@example.com")
    directory.add_user("u3", "Carol", "carol@example.com")
    return directory


@pytest.fixture
def controlled_store():
    return ControlledStore()


@pytest.fixture
def make_message() -> Callable[..., Message]:
    counter = {"n": 0}

    def _make(other: str, text: str = "hi", minute: Optional[int] = 0, sender: Optional[str] = None,
              participants: Optional[frozenset] = None) -> Message:
        counter["n"] += 1
        return Message(
            id=f"msg-{counter['n']}",
            sender_id=sender or other,
            sender_name=sender or other,
            receiver_id="admin" if (sender or other) == other else other,
            participants=participants if participants is not None else conversation_pair(other),
            text=text,
            created_at=None if minute is None else BASE_TIME + timedelta(minutes=minute),
        )

    return _make


@pytest.fixture
def eventually():
    async def _wait(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not reached before timeout")
            await asyncio.sleep(0.01)

    return _wait


@pytest.fixture
def gated_profiles():
    directory = GatedProfiles()
    directory.add_user("u1", "Alice", "alice@example.com")
    return directory


@pytest.fixture
def failing_store():
    return FailingStore()

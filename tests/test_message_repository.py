from datetime import datetime, timezone

import pytest
from bson import ObjectId
from pymongo.errors import OperationFailure

from support_chat.core.config import MESSAGES_COLLECTION
from support_chat.core.exceptions import StoreError
from support_chat.models.conversation import Actor
from support_chat.models.message import new_message_document
from support_chat.repositories.message_repository import MessageRepository
from support_chat.services.composer import Composer, InputBuffer, SendContext


class InsertResult:

    def __init__(self, inserted_id):
        self.inserted_id = inserted_id


class FakeCollection:
    """Just enough of a motor collection for append; update_one can be made to fail."""

    def __init__(self, fail_update=False):
        self.docs = {}
        self.fail_update = fail_update

    async def insert_one(self, doc):
        doc["_id"] = ObjectId()
        self.docs[doc["_id"]] = dict(doc)
        return InsertResult(doc["_id"])

    async def update_one(self, query, update):
        if self.fail_update:
            raise OperationFailure("write concern timeout")
        for field in update["$currentDate"]:
            self.docs[query["_id"]][field] = datetime.now(timezone.utc)

    async def delete_one(self, query):
        self.docs.pop(query["_id"], None)


class RecordingBus:
    enabled = False

    def __init__(self):
        self.published = []

    async def publish(self, channel, message):
        self.published.append((channel, message))


def _repository(collection, bus):
    return MessageRepository({MESSAGES_COLLECTION: collection}, bus)


@pytest.mark.asyncio
async def test_append_stores_resolved_timestamp():
    collection = FakeCollection()
    bus = RecordingBus()
    repo = _repository(collection, bus)

    message = await repo.append(new_message_document("u1", "Alice", "admin", "u1", "Hello"))

    assert message.text == "Hello"
    assert message.created_at is None
    (stored,) = collection.docs.values()
    assert stored["createdAt"] is not None
    # pending insert, then the resolved timestamp
    assert len(bus.published) == 2


@pytest.mark.asyncio
async def test_failed_timestamp_leaves_no_unresolved_message():
    collection = FakeCollection(fail_update=True)
    bus = RecordingBus()
    repo = _repository(collection, bus)

    with pytest.raises(StoreError):
        await repo.append(new_message_document("u1", "Alice", "admin", "u1", "Hello"))
    assert collection.docs == {}
    # observers that saw the pending insert are told it went away
    assert len(bus.published) == 2


@pytest.mark.asyncio
async def test_retried_send_after_failure_does_not_duplicate():
    collection = FakeCollection(fail_update=True)
    buffer = InputBuffer("Hello")
    composer = Composer(_repository(collection, RecordingBus()), buffer)
    context = SendContext(actor=Actor(user_id="u1", display_name="Alice"))

    assert await composer.send(None, context) is None
    assert await composer.send(None, context) is None
    assert buffer.text == "Hello"
    assert collection.docs == {}

    collection.fail_update = False
    assert await composer.send(None, context) is not None
    assert [d["message"] for d in collection.docs.values()] == ["Hello"]
    assert buffer.text == ""

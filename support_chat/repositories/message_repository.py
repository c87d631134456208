import logging
from typing import Any, Dict, List

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING
from pymongo.errors import PyMongoError

from support_chat.core.config import MESSAGES_CHANNEL, MESSAGES_COLLECTION
from support_chat.core.exceptions import StoreError
from support_chat.models.message import Message, MessageDocument, message_from_document, messages_from_documents
from support_chat.repositories.live_query import LiveQuery
from support_chat.repositories.ports import ListenHandle, MessageStorePort, OnBatch, OnError
from support_chat.utils.realtime_bus import Bus


logger = logging.getLogger(__name__)


class MessageRepository(MessageStorePort):

    def __init__(self, db: AsyncIOMotorDatabase, bus: Bus) -> None:
        self._db = db
        self._bus = bus

    @property
    def collection(self):
        return self._db[MESSAGES_COLLECTION]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("participants", ASCENDING), ("createdAt", ASCENDING)])

    async def append(self, doc: MessageDocument) -> Message:
        payload: Dict[str, Any] = dict(doc)
        payload["createdAt"] = None
        try:
            result = await self.collection.insert_one(payload)
        except PyMongoError as exc:
            raise StoreError(f"Failed to append message: {exc}") from exc
        message_id = result.inserted_id
        # observers see the pending insert first, then the resolved timestamp
        await self._bus.publish(MESSAGES_CHANNEL, str(message_id))
        try:
            await self.collection.update_one({"_id": message_id}, {"$currentDate": {"createdAt": True}})
        except PyMongoError as exc:
            await self._discard(message_id)
            raise StoreError(f"Failed to append message: {exc}") from exc
        await self._bus.publish(MESSAGES_CHANNEL, str(message_id))
        payload["_id"] = str(message_id)
        message = message_from_document(payload)
        if message is None:
            raise StoreError("Appended message failed validation")
        return message

    async def _discard(self, message_id: Any) -> None:
        # a failed send must not leave a message that never resolves
        try:
            await self.collection.delete_one({"_id": message_id})
        except PyMongoError:
            logger.exception("Failed to remove unresolved message", extra={"message_id": str(message_id)})
        await self._bus.publish(MESSAGES_CHANNEL, str(message_id))

    async def query(self, participant: str) -> List[Message]:
        sort = [("createdAt", ASCENDING), ("_id", ASCENDING)]
        try:
            cur = self.collection.find({"participants": participant}).sort(sort)
            items = await cur.to_list(length=None)
        except PyMongoError as exc:
            raise StoreError(f"Failed to query messages for {participant}: {exc}") from exc
        for it in items:
            it["_id"] = str(it.get("_id"))
        return messages_from_documents(items)

    async def listen(self, participant: str, on_update: OnBatch, on_error: OnError) -> ListenHandle:
        live = LiveQuery(lambda: self.query(participant), on_update, on_error, self._bus)
        try:
            return await live.start()
        except Exception as exc:
            raise StoreError(f"Failed to open live query for {participant}: {exc}") from exc

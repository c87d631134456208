from typing import Any, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from support_chat.core.config import USERS_COLLECTION
from support_chat.core.exceptions import ProfileLookupError
from support_chat.models.conversation import Profile
from support_chat.models.user import profile_from_document
from support_chat.repositories.ports import ProfileLookupPort


class UserRepository(ProfileLookupPort):

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._collection = db.get_collection(USERS_COLLECTION)

    async def get_profile(self, user_id: str) -> Optional[Profile]:
        try:
            user = await self._collection.find_one({"_id": {"$in": _candidate_ids(user_id)}})
        except PyMongoError as exc:
            raise ProfileLookupError(f"Failed to load profile {user_id}: {exc}") from exc
        if not user:
            return None
        return profile_from_document(user)


def _candidate_ids(user_id: str) -> List[Any]:
    # user documents may be keyed by the auth uid string or by an ObjectId
    ids: List[Any] = [user_id]
    if ObjectId.is_valid(user_id):
        ids.append(ObjectId(user_id))
    return ids

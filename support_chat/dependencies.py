from typing import Optional

from support_chat.core.config import settings
from support_chat.database.connection import get_database
from support_chat.repositories.memory_store import MemoryMessageStore, MemoryProfileDirectory
from support_chat.repositories.message_repository import MessageRepository
from support_chat.repositories.ports import MessageStorePort, ProfileLookupPort
from support_chat.repositories.user_repository import UserRepository
from support_chat.services.inbox import ProfileResolver
from support_chat.utils.realtime_bus import get_bus


_memory_store: Optional[MemoryMessageStore] = None
_memory_profiles: Optional[MemoryProfileDirectory] = None


async def get_message_store() -> MessageStorePort:
    global _memory_store
    bus = await get_bus()
    if settings.STORE_PROVIDER == "memory":
        if _memory_store is None:
            _memory_store = MemoryMessageStore(bus)
        return _memory_store
    return MessageRepository(get_database(), bus)


def get_profile_lookup() -> ProfileLookupPort:
    global _memory_profiles
    if settings.STORE_PROVIDER == "memory":
        if _memory_profiles is None:
            _memory_profiles = MemoryProfileDirectory()
        return _memory_profiles
    return UserRepository(get_database())


def get_profile_resolver() -> ProfileResolver:
    # one-shot requests get a fresh resolver; live sessions own their cache
    return ProfileResolver(get_profile_lookup(), cache_enabled=False)


def reset_memory_backends() -> None:
    global _memory_store, _memory_profiles
    _memory_store = None
    _memory_profiles = None

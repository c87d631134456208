import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from support_chat.core.config import SUPPORT_ID
from support_chat.models.conversation import PLACEHOLDER_PROFILE, ConversationSummary, Profile
from support_chat.models.message import Message, conversation_key
from support_chat.repositories.ports import MessageStorePort, ProfileLookupPort


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InboxState:
    conversations: Tuple[ConversationSummary, ...] = ()
    error: Optional[str] = None


def _supersedes(candidate: Message, current: Message) -> bool:
    if not current.is_resolved:
        # a resolved timestamp always replaces a pending placeholder
        return True
    if not candidate.is_resolved:
        return False
    return candidate.created_at > current.created_at


def group_conversations(messages: Iterable[Message]) -> Dict[str, Message]:
    """Map each customer id to the latest message of its conversation."""
    latest: Dict[str, Message] = {}
    for message in messages:
        key = conversation_key(message.participants)
        if key is None:
            continue
        current = latest.get(key)
        if current is None or _supersedes(message, current):
            latest[key] = message
    return latest


def rank_conversations(summaries: Iterable[ConversationSummary]) -> List[ConversationSummary]:
    # sorted() is stable with reverse=True; pending conversations count as age zero
    return sorted(summaries, key=lambda s: s.last_activity, reverse=True)


class ProfileResolver:
    """Profile lookup that never fails: unknown or unreachable users get a placeholder."""

    def __init__(self, lookup: ProfileLookupPort, cache_enabled: bool = True) -> None:
        self._lookup = lookup
        self._cache: Optional[Dict[str, Profile]] = {} if cache_enabled else None

    async def resolve(self, user_id: str) -> Profile:
        if self._cache is not None and user_id in self._cache:
            return self._cache[user_id]
        try:
            profile = await self._lookup.get_profile(user_id)
        except Exception:
            logger.warning("Profile lookup failed, using placeholder", exc_info=True, extra={"other_party_id": user_id})
            return PLACEHOLDER_PROFILE
        if profile is None:
            logger.debug("No profile found, using placeholder", extra={"other_party_id": user_id})
            return PLACEHOLDER_PROFILE
        if self._cache is not None:
            self._cache[user_id] = profile
        return profile


async def build_inbox(messages: Iterable[Message], resolver: ProfileResolver) -> List[ConversationSummary]:
    latest = group_conversations(messages)
    keys = list(latest)
    profiles = await asyncio.gather(*(resolver.resolve(key) for key in keys))
    summaries = [
        ConversationSummary(
            other_party_id=key,
            display_name=profile.display_name,
            email=profile.email,
            last_message=latest[key],
        )
        for key, profile in zip(keys, profiles)
    ]
    return rank_conversations(summaries)


async def fetch_inbox(store: MessageStorePort, resolver: ProfileResolver) -> List[ConversationSummary]:
    return await build_inbox(await store.query(SUPPORT_ID), resolver)


class ConversationIndex:

    def __init__(self, resolver: ProfileResolver) -> None:
        self._resolver = resolver
        self.state = InboxState()

    @property
    def conversations(self) -> Tuple[ConversationSummary, ...]:
        return self.state.conversations

    async def apply_batch(self, batch: List[Message], is_current: Callable[[], bool]) -> bool:
        """Rebuild the inbox from a full batch; returns False when the result went stale."""
        conversations = await build_inbox(batch, self._resolver)
        if not is_current():
            logger.debug("Discarding inbox built for a superseded subscription")
            return False
        self.state = InboxState(conversations=tuple(conversations))
        return True

    def apply_error(self, exc: Exception) -> None:
        self.state = InboxState(conversations=(), error=str(exc) or exc.__class__.__name__)

from dataclasses import dataclass
from typing import Optional

from support_chat.models.message import Message


@dataclass(frozen=True)
class Profile:
    display_name: str
    email: str = ""


PLACEHOLDER_PROFILE = Profile(display_name="User", email="")


@dataclass(frozen=True)
class ConversationSummary:
    other_party_id: str
    display_name: str
    email: str
    last_message: Message
    # read receipts are not tracked; always zero
    unread_count: int = 0

    @property
    def last_activity(self) -> float:
        created_at = self.last_message.created_at
        return created_at.timestamp() if created_at is not None else 0.0


@dataclass(frozen=True)
class Actor:
    user_id: str
    display_name: str
    role: str = "customer"

    @property
    def is_support(self) -> bool:
        return self.role == "admin"

    def transcript_peer(self, selected: Optional[str]) -> Optional[str]:
        """Customer id whose conversation this actor is looking at."""
        if self.is_support:
            return selected
        return self.user_id

from typing import Any, Mapping, Optional, TypedDict

from support_chat.models.conversation import PLACEHOLDER_PROFILE, Profile


class UserDocument(TypedDict, total=False):

    _id: str
    displayName: Optional[str]
    email: Optional[str]


def profile_from_document(doc: Optional[Mapping[str, Any]]) -> Profile:
    if not doc:
        return PLACEHOLDER_PROFILE
    email = doc.get("email") or ""
    return Profile(display_name=doc.get("displayName") or email or PLACEHOLDER_PROFILE.display_name, email=email)

from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


# Shared support-side participant token; there is exactly one support inbox.
SUPPORT_ID = "admin"

MESSAGES_COLLECTION = "messages"
USERS_COLLECTION = "users"
MESSAGES_CHANNEL = "messages"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    MONGO_URL: str = "mongodb://localhost:27017"
    MONGO_DB: str = "storefront"
    REDIS_URL: Optional[str] = None

    STORE_PROVIDER: Literal["mongo", "memory"] = "mongo"
    PROFILE_CACHE_ENABLED: bool = True
    LOG_LEVEL: str = "INFO"


settings = Settings()

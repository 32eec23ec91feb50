"""Application settings.

Values are read from environment variables (or a local ``.env`` file) through
pydantic-settings. ``get_settings()`` caches a single instance per process.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):

    app_name: str = Field(default="GymChat Messaging", alias="APP_NAME")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # MongoDB
    mongodb_url: str = Field(default="mongodb://localhost:27017", alias="MONGODB_URL")
    mongodb_db: str = Field(default="gymchat", alias="MONGODB_DB")
    messages_collection: str = Field(default="public_messages", alias="MESSAGES_COLLECTION")
    shared_document_id: str = Field(default="all_messages", alias="SHARED_DOCUMENT_ID")
    members_collection: str = Field(default="members", alias="MEMBERS_COLLECTION")

    # Redis pub/sub for change notifications; in-process fan-out when unset
    redis_url: Optional[str] = Field(default=None, alias="REDIS_URL")

    # JWT session validation
    secret_key: str = Field(default="change-me", alias="SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(default=60 * 24, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    # Messaging defaults
    admin_identity: str = Field(default="admin", alias="ADMIN_IDENTITY")
    admin_display_name: str = Field(default="Admin", alias="ADMIN_DISPLAY_NAME")
    default_display_name: str = Field(default="User", alias="DEFAULT_DISPLAY_NAME")
    preview_length: int = Field(default=200, alias="PREVIEW_LENGTH")

    cors_origins: List[str] = Field(default_factory=lambda: ["*"], alias="CORS_ORIGINS")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ClientSettings(BaseSettings):
    SERVER_URL: str = "ws://localhost:8000/ws/chat"

    RECONNECT_BASE_DELAY: float = Field(1.0, gt=0)
    RECONNECT_MAX_DELAY: float = Field(30.0, gt=0)
    RECONNECT_MAX_ATTEMPTS: int = Field(5, ge=0)

    TYPING_IDLE_SECONDS: float = Field(2.0, ge=1.0, le=3.0)
    TYPING_TIMEOUT_SECONDS: float = Field(5.0, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="CHAT_CLIENT_",
        env_file=".env",
        extra="ignore",
    )

"""WebSocket message envelope models."""
from __future__ import annotations

from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from chat_sync.domain.value_objects.enums import MessageType


class WsInbound(BaseModel):
    """Client → Server."""

    type: str  # authenticate | join-chat | leave-chat | send-message | typing | user-online | ping
    data: dict[str, Any] = {}


class WsOutbound(BaseModel):
    """Server → Client."""

    type: str  # new-message | typing | user-status-change | authenticated | error | pong | ...
    data: dict[str, Any] = {}


class AuthenticatePayload(BaseModel):
    token: str = Field(min_length=1)


class ChatRefPayload(BaseModel):
    chat_id: UUID


class SendMessagePayload(BaseModel):
    chat_id: UUID
    client_msg_id: UUID = Field(default_factory=uuid4)
    content: str
    type: MessageType = MessageType.TEXT
    media_url: str | None = None
    reply_to_id: UUID | None = None


class TypingPayload(BaseModel):
    chat_id: UUID
    is_typing: bool


def frame(event_type: str, data: dict[str, Any] | None = None) -> str:
    return WsOutbound(type=event_type, data=data or {}).model_dump_json()


def error_frame(code: str, detail: str | None = None, **extra: Any) -> str:
    data: dict[str, Any] = {"code": code}
    if detail:
        data["detail"] = detail
    data.update(extra)
    return frame("error", data)

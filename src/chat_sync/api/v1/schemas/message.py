from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from chat_sync.domain.entities.message import Message
from chat_sync.domain.value_objects.enums import MessageType


class SendMessageRequest(BaseModel):
    client_msg_id: UUID = Field(default_factory=uuid4)
    content: str
    type: MessageType = MessageType.TEXT
    media_url: str | None = None
    reply_to_id: UUID | None = None


class EditMessageRequest(BaseModel):
    content: str


class ReactionRequest(BaseModel):
    emoji: str = Field(min_length=1, max_length=32)


class ReactionResponse(BaseModel):
    user_id: int
    emoji: str
    created_at: datetime

    model_config = {"from_attributes": True}


class ReadReceiptResponse(BaseModel):
    user_id: int
    read_at: datetime

    model_config = {"from_attributes": True}


class MessageResponse(BaseModel):
    id: UUID
    chat_id: UUID
    sender_id: int
    type: str
    content: str
    media_url: str | None
    reply_to_id: UUID | None
    client_msg_id: UUID
    created_at: datetime
    is_edited: bool
    edited_at: datetime | None
    is_deleted: bool
    deleted_at: datetime | None
    reactions: list[ReactionResponse] = []
    read_by: list[ReadReceiptResponse] = []

    model_config = {"from_attributes": True}

    @classmethod
    def from_entity(cls, msg: Message) -> MessageResponse:
        resp = cls.model_validate(msg, from_attributes=True)
        if msg.is_deleted:
            resp.content = ""
            resp.media_url = None
        return resp

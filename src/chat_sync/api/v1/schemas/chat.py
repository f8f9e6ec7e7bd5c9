from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from chat_sync.application.dto.chat import ChatSummaryDTO
from chat_sync.domain.entities.chat import Chat
from chat_sync.domain.value_objects.enums import ChatType


class CreateChatRequest(BaseModel):
    type: ChatType = ChatType.INDIVIDUAL
    participant_ids: list[int] = Field(min_length=1)
    name: str | None = Field(default=None, max_length=255)


class ParticipantResponse(BaseModel):
    user_id: int
    role: str
    joined_at: datetime

    model_config = {"from_attributes": True}


class ChatResponse(BaseModel):
    id: UUID
    type: str
    name: str
    participants: list[ParticipantResponse]
    last_message_id: UUID | None
    last_message_at: datetime | None
    created_at: datetime
    updated_at: datetime
    unread_count: int = 0

    @classmethod
    def from_entity(cls, chat: Chat, unread_count: int = 0) -> ChatResponse:
        return cls(
            id=chat.id,
            type=chat.type,
            name=chat.display_name,
            participants=[
                ParticipantResponse.model_validate(p, from_attributes=True)
                for p in chat.participants
            ],
            last_message_id=chat.last_message_id,
            last_message_at=chat.last_message_at,
            created_at=chat.created_at,
            updated_at=chat.updated_at,
            unread_count=unread_count,
        )

    @classmethod
    def from_summary(cls, summary: ChatSummaryDTO) -> ChatResponse:
        return cls.from_entity(summary.chat, summary.unread_count)


class ReadStateResponse(BaseModel):
    chat_id: UUID
    user_id: int
    unread_count: int
    last_read_at: datetime | None

    model_config = {"from_attributes": True}

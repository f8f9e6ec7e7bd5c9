from __future__ import annotations

from dataclasses import dataclass, field

from chat_sync.domain.entities.chat import Chat
from chat_sync.domain.value_objects.enums import ChatType


@dataclass(frozen=True, slots=True)
class CreateChatDTO:
    type: ChatType
    participant_ids: list[int] = field(default_factory=list)
    name: str | None = None


@dataclass(frozen=True, slots=True)
class ChatSummaryDTO:
    chat: Chat
    unread_count: int

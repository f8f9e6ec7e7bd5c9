from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from chat_sync.domain.value_objects.enums import MessageType


@dataclass(frozen=True, slots=True)
class SendMessageDTO:
    chat_id: UUID
    client_msg_id: UUID
    content: str
    type: MessageType = MessageType.TEXT
    media_url: str | None = None
    reply_to_id: UUID | None = None

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from chat_sync.domain.entities.participant import Participant
from chat_sync.domain.value_objects.enums import ChatType, ParticipantRole


@dataclass(frozen=True, slots=True)
class Chat:
    id: UUID
    type: str
    name: str | None
    last_message_id: UUID | None
    last_message_at: datetime | None
    created_at: datetime
    updated_at: datetime
    participants: list[Participant] = field(default_factory=list)

    @property
    def participant_ids(self) -> list[int]:
        return [p.user_id for p in self.participants]

    @property
    def display_name(self) -> str:
        if self.name:
            return self.name
        return "Group Chat" if self.type == ChatType.GROUP else "Chat"

    def is_admin(self, user_id: int) -> bool:
        return self.type == ChatType.GROUP and any(
            p.user_id == user_id and p.role == ParticipantRole.ADMIN
            for p in self.participants
        )

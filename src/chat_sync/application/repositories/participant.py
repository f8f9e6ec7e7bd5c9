from __future__ import annotations

from typing import Protocol
from uuid import UUID

from chat_sync.domain.entities.participant import Participant


class ParticipantReader(Protocol):
    async def is_participant(self, chat_id: UUID, user_id: int) -> bool: ...

    async def list_participants(self, chat_id: UUID) -> list[Participant]: ...


class ParticipantWriter(Protocol):
    async def add(self, participant: Participant) -> None: ...

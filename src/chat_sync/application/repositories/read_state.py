from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from chat_sync.domain.entities.read_state import ReadState


class ReadStateReader(Protocol):
    async def get(self, chat_id: UUID, user_id: int) -> ReadState | None: ...

    async def list_for_chat(self, chat_id: UUID) -> list[ReadState]: ...

    async def unread_counts(
        self, user_id: int, chat_ids: list[UUID]
    ) -> dict[UUID, int]: ...


class ReadStateWriter(Protocol):
    async def lock(self, chat_id: UUID, user_ids: list[int]) -> None:
        """Row-lock each user's ledger row, creating it if missing."""
        ...

    async def increment_unread(self, chat_id: UUID, user_ids: list[int]) -> None:
        """Add one to each user's counter in a single atomic statement."""
        ...

    async def reset(
        self, chat_id: UUID, user_id: int, read_at: datetime
    ) -> ReadState: ...

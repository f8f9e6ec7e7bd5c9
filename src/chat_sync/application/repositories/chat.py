from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from chat_sync.domain.entities.chat import Chat


class ChatReader(Protocol):
    async def get_by_id(self, chat_id: UUID) -> Chat | None: ...

    async def find_individual(self, user_a: int, user_b: int) -> Chat | None:
        """Find the one-to-one chat between two users, if any."""
        ...

    async def list_for_user(
        self, user_id: int, *, cursor: str | None = None, limit: int = 20
    ) -> list[Chat]: ...


class ChatWriter(Protocol):
    async def create(self, chat: Chat) -> Chat: ...

    async def lock_individual_pair(self, user_a: int, user_b: int) -> None:
        """Hold the pair's one-to-one creation lock until the transaction ends."""
        ...

    async def touch_last_message(
        self, chat_id: UUID, message_id: UUID, ts: datetime
    ) -> None: ...

from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from chat_sync.domain.entities.message import Message, Reaction


class MessageReader(Protocol):
    async def get_by_id(self, message_id: UUID) -> Message | None: ...

    async def list_messages(
        self,
        chat_id: UUID,
        *,
        cursor: str | None = None,
        limit: int = 50,
    ) -> list[Message]:
        """Newest first; the cursor points at the oldest message of the previous page."""
        ...

    async def list_reactions(
        self, message_ids: list[UUID]
    ) -> dict[UUID, list[Reaction]]: ...


class MessageWriter(Protocol):
    async def create_if_not_exists(self, message: Message) -> tuple[Message, bool]:
        """Insert message. Return (message, created). If conflict on client_msg_id → return existing."""
        ...

    async def get_by_client_msg_id(
        self,
        chat_id: UUID,
        sender_id: int,
        client_msg_id: UUID,
    ) -> Message | None: ...

    async def edit_content(
        self, message_id: UUID, content: str, edited_at: datetime
    ) -> Message | None:
        """Set new content only if the message is not deleted. None when nothing matched."""
        ...

    async def soft_delete(
        self, message_id: UUID, deleted_by: int, deleted_at: datetime
    ) -> Message | None:
        """Flag the message deleted only if it is not already. None when nothing matched."""
        ...

    async def lock(self, message_id: UUID) -> Message | None:
        """Row-lock the message for the rest of the transaction."""
        ...

    async def upsert_reaction(
        self, message_id: UUID, user_id: int, emoji: str, created_at: datetime
    ) -> None: ...

    async def remove_reaction(self, message_id: UUID, user_id: int) -> bool: ...

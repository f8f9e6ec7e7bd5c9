from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from uuid import UUID


@dataclass(frozen=True, slots=True)
class Reaction:
    user_id: int
    emoji: str
    created_at: datetime


@dataclass(frozen=True, slots=True)
class ReadReceipt:
    user_id: int
    read_at: datetime


@dataclass(frozen=True, slots=True)
class Message:
    """Message envelope.

    Identity is ``id``. Only the edit, delete, reaction and read-receipt
    annotations change after creation.
    """

    id: UUID
    chat_id: UUID
    sender_id: int
    type: str
    content: str
    client_msg_id: UUID
    created_at: datetime
    media_url: str | None = None
    reply_to_id: UUID | None = None
    is_edited: bool = False
    edited_at: datetime | None = None
    is_deleted: bool = False
    deleted_at: datetime | None = None
    deleted_by: int | None = None
    reactions: list[Reaction] = field(default_factory=list)
    read_by: list[ReadReceipt] = field(default_factory=list)

    def with_reactions(self, reactions: list[Reaction]) -> Message:
        return replace(self, reactions=list(reactions))

    def with_read_by(self, read_by: list[ReadReceipt]) -> Message:
        return replace(self, read_by=list(read_by))

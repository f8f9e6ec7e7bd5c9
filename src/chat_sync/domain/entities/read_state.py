from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID


@dataclass(frozen=True, slots=True)
class ReadState:
    """Ledger row: unread counter plus read marker for one (chat, user)."""

    chat_id: UUID
    user_id: int
    unread_count: int
    last_read_at: datetime | None

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID


@dataclass(frozen=True, slots=True)
class Participant:
    chat_id: UUID
    user_id: int
    role: str
    joined_at: datetime

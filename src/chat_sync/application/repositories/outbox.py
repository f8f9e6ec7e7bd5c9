from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from chat_sync.application.dto.events import RealtimeEvent


@dataclass(frozen=True, slots=True)
class OutboxRecord:
    """Pending realtime event as seen by the outbox worker."""

    id: int
    payload: dict[str, Any]
    attempts: int

    @property
    def event(self) -> RealtimeEvent:
        return RealtimeEvent.from_payload(self.payload)


class OutboxWriter(Protocol):
    async def add(self, event: RealtimeEvent) -> None:
        """Stage an event in the current transaction."""
        ...

    async def fetch_pending(self, batch_size: int) -> list[OutboxRecord]: ...

    async def mark_sent(self, ids: list[int]) -> None: ...

    async def mark_failed(self, record_id: int, next_retry_at: datetime) -> None: ...

    async def mark_dead(self, record_id: int) -> None: ...
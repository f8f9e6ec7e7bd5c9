from __future__ import annotations

from typing import Protocol

from chat_sync.application.dto.events import RealtimeEvent


class EventPublisher(Protocol):
    async def publish(self, event: RealtimeEvent) -> None: ...

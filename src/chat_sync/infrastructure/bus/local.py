"""Single-node publisher: hands events straight to the local dispatcher."""
from __future__ import annotations

from chat_sync.application.dto.events import RealtimeEvent
from chat_sync.infrastructure.ws.dispatcher import EventDispatcher


class InProcessPublisher:
    """Implements application.ports.bus.EventPublisher without a broker."""

    def __init__(self, dispatcher: EventDispatcher) -> None:
        self._dispatcher = dispatcher

    async def publish(self, event: RealtimeEvent) -> None:
        await self._dispatcher.dispatch(event)

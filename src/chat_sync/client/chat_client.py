from __future__ import annotations

from chat_sync.client.config import ClientSettings
from chat_sync.client.connection import ConnectionController
from chat_sync.client.events import EventBus
from chat_sync.client.state import ChatStore
from chat_sync.client.transport import Transport
from chat_sync.client.typing_indicator import TypingEmitter, TypingTracker
from chat_sync.domain.events.delivery import EventKind


class ChatClient:
    """Connection, local state and typing helpers wired onto one event bus."""

    def __init__(
        self,
        settings: ClientSettings | None = None,
        *,
        transport: Transport | None = None,
    ) -> None:
        settings = settings or ClientSettings()
        self.bus = EventBus()
        self.connection = ConnectionController.from_settings(
            settings, transport=transport, bus=self.bus,
        )
        self.store = ChatStore()
        self.store.bind(self.bus)
        self.typing = TypingTracker(settings.TYPING_TIMEOUT_SECONDS)
        self.typing_emitter = TypingEmitter(self.connection.typing, settings.TYPING_IDLE_SECONDS)

        self.bus.on(EventKind.TYPING, self.typing.apply, scope="client")
        self.bus.on(EventKind.AUTHENTICATED, self._on_authenticated, scope="client")

    def _on_authenticated(self, data: dict) -> None:
        self.store.user_id = int(data["user_id"])

    async def open_chat(self, chat_id: str) -> None:
        self.store.open_chat(chat_id)
        await self.connection.join(chat_id)

    async def close_chat(self, chat_id: str) -> None:
        self.store.close_chat(chat_id)
        self.typing.clear_chat(chat_id)
        await self.typing_emitter.stop(chat_id)
        await self.connection.leave(chat_id)

    async def send(self, chat_id: str, content: str) -> str:
        await self.typing_emitter.stop(chat_id)
        return await self.connection.send_message(chat_id, content)

    async def close(self) -> None:
        await self.typing_emitter.close()
        await self.connection.disconnect()

"""Room membership: which connections listen to which chat."""
from __future__ import annotations

from uuid import UUID

from chat_sync.application.exceptions import Unauthenticated
from chat_sync.infrastructure.ws.registry import ConnectionRegistry


class RoomManager:
    def __init__(self, registry: ConnectionRegistry) -> None:
        self._registry = registry
        self._rooms: dict[UUID, set[str]] = {}
        self._by_connection: dict[str, set[UUID]] = {}

    def join(self, connection_id: str, chat_id: UUID) -> None:
        if not self._registry.is_authenticated(connection_id):
            raise Unauthenticated("Authenticate before joining a chat")
        self._rooms.setdefault(chat_id, set()).add(connection_id)
        self._by_connection.setdefault(connection_id, set()).add(chat_id)

    def leave(self, connection_id: str, chat_id: UUID) -> None:
        subs = self._rooms.get(chat_id)
        if subs is not None:
            subs.discard(connection_id)
            if not subs:
                del self._rooms[chat_id]
        joined = self._by_connection.get(connection_id)
        if joined is not None:
            joined.discard(chat_id)
            if not joined:
                del self._by_connection[connection_id]

    def drop_connection(self, connection_id: str) -> set[UUID]:
        """Remove a connection from every room. Returns the rooms it was in."""
        joined = self._by_connection.pop(connection_id, set())
        for chat_id in joined:
            subs = self._rooms.get(chat_id)
            if subs is None:
                continue
            subs.discard(connection_id)
            if not subs:
                del self._rooms[chat_id]
        return joined

    def subscribers(self, chat_id: UUID) -> set[str]:
        return set(self._rooms.get(chat_id, ()))

    def rooms_for(self, connection_id: str) -> set[UUID]:
        return set(self._by_connection.get(connection_id, ()))

    def is_subscribed(self, connection_id: str, chat_id: UUID) -> bool:
        return connection_id in self._rooms.get(chat_id, ())

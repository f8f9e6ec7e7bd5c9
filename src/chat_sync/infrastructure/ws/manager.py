"""In-process WebSocket connection manager."""
from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Iterable
from uuid import UUID

from fastapi import WebSocket

from chat_sync.application.exceptions import BroadcastPartialFailure
from chat_sync.domain.entities.session import Session
from chat_sync.infrastructure.ws.protocol import frame
from chat_sync.infrastructure.ws.registry import ConnectionRegistry
from chat_sync.infrastructure.ws.rooms import RoomManager

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Owns the node's sockets: the registry, the rooms and the actual sends.

    Every fan-out sends to its recipients concurrently; one slow or broken
    socket never blocks or fails delivery to the others. Connections whose
    send fails are dropped from their rooms; their session is cleaned up
    when the socket's own read loop ends.
    """

    def __init__(self, registry: ConnectionRegistry, rooms: RoomManager | None = None) -> None:
        self.registry = registry
        self.rooms = rooms or RoomManager(registry)

    async def connect(self, ws: WebSocket) -> str:
        await ws.accept()
        connection_id = uuid.uuid4().hex
        self.registry.attach(connection_id, ws)
        logger.debug("WS connected: %s (total=%d)", connection_id, len(self.registry))
        return connection_id

    async def authenticate(self, connection_id: str, token: str) -> tuple[Session, int | None]:
        """Bind a connection to the token's user.

        Returns the new session and, when the connection previously belonged
        to someone else who now has no connection left, that user's id.
        Switching identity drops every room the connection had joined.
        """
        previous = self.registry.user_for(connection_id)
        session = await self.registry.authenticate(connection_id, token)
        if previous is None or previous == session.user_id:
            return session, None
        left = self.rooms.drop_connection(connection_id)
        logger.info(
            "Connection %s switched from user %s to %s, left %d room(s)",
            connection_id, previous, session.user_id, len(left),
        )
        return session, (None if self.registry.is_online(previous) else previous)

    def disconnect(self, connection_id: str) -> int | None:
        """Drop a connection everywhere. Returns the user id if they went offline."""
        self.rooms.drop_connection(connection_id)
        went_offline = self.registry.deregister(connection_id)
        logger.debug("WS disconnected: %s", connection_id)
        return went_offline

    async def send_to_connection(
        self,
        connection_id: str,
        event_type: str,
        data: dict[str, Any],
    ) -> bool:
        failed = await self._fan_out([connection_id], event_type, frame(event_type, data))
        return not failed

    async def broadcast(
        self,
        chat_id: UUID,
        event_type: str,
        data: dict[str, Any],
        *,
        exclude_user: int | None = None,
    ) -> list[str]:
        """Send to every connection subscribed to ``chat_id``."""
        targets = self._without_user(self.rooms.subscribers(chat_id), exclude_user)
        return await self._fan_out(targets, event_type, frame(event_type, data))

    async def send_to_users(
        self,
        user_ids: Iterable[int],
        event_type: str,
        data: dict[str, Any],
        *,
        exclude_user: int | None = None,
    ) -> list[str]:
        targets: set[str] = set()
        for user_id in user_ids:
            if user_id != exclude_user:
                targets |= self.registry.connections_for(user_id)
        return await self._fan_out(targets, event_type, frame(event_type, data))

    async def broadcast_all(
        self,
        event_type: str,
        data: dict[str, Any],
        *,
        exclude_user: int | None = None,
    ) -> list[str]:
        """Send to every authenticated connection on this node."""
        targets = self._without_user(self.registry.authenticated_connections(), exclude_user)
        return await self._fan_out(targets, event_type, frame(event_type, data))

    def _without_user(self, connection_ids: set[str], user_id: int | None) -> set[str]:
        if user_id is None:
            return connection_ids
        return connection_ids - self.registry.connections_for(user_id)

    async def _fan_out(
        self,
        connection_ids: Iterable[str],
        event_type: str,
        raw: str,
    ) -> list[str]:
        targets = list(connection_ids)
        if not targets:
            return []
        results = await asyncio.gather(
            *(self._send(conn, raw) for conn in targets),
            return_exceptions=True,
        )
        failed = [conn for conn, res in zip(targets, results) if res is not True]
        if failed:
            for conn in failed:
                self.rooms.drop_connection(conn)
            logger.warning("%s", BroadcastPartialFailure(event_type, failed))
        return failed

    async def _send(self, connection_id: str, raw: str) -> bool:
        transport = self.registry.transport(connection_id)
        if transport is None:
            return False
        await transport.send_text(raw)
        return True

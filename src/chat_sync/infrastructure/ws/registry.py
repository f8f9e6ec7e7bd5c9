"""Connection registry: which live connections belong to which user."""
from __future__ import annotations

import logging
from typing import Protocol

from chat_sync.application.exceptions import AuthFailure
from chat_sync.application.ports.auth import TokenVerifier
from chat_sync.application.ports.clock import Clock, SystemClock
from chat_sync.domain.entities.session import Session

logger = logging.getLogger(__name__)


class Transport(Protocol):
    async def send_text(self, data: str) -> None: ...


class ConnectionRegistry:
    """Tracks open connections, their authenticated sessions and per-user fan-out.

    A connection is attached as soon as the socket is accepted and only gets
    a :class:`Session` once its credential verifies. One user may hold any
    number of sessions (one per device).
    """

    def __init__(self, verifier: TokenVerifier, clock: Clock | None = None) -> None:
        self._verifier = verifier
        self.clock = clock or SystemClock()
        self._transports: dict[str, Transport] = {}
        self._sessions: dict[str, Session] = {}
        self._by_user: dict[int, set[str]] = {}

    def attach(self, connection_id: str, transport: Transport) -> None:
        self._transports[connection_id] = transport

    def register(self, user_id: int, connection_id: str) -> Session:
        """Bind a connection to a user. Re-registering the same pair is a no-op."""
        current = self._sessions.get(connection_id)
        if current is not None and current.user_id == user_id:
            return current
        if current is not None:
            self._unbind(connection_id)

        session = Session(
            user_id=user_id,
            connection_id=connection_id,
            authenticated_at=self.clock.now(),
        )
        self._sessions[connection_id] = session
        self._by_user.setdefault(user_id, set()).add(connection_id)
        return session

    async def authenticate(self, connection_id: str, token: str) -> Session:
        """Verify ``token`` and bind its identity to the connection.

        Raises :class:`AuthFailure` on a bad token; the connection stays
        attached (and unauthenticated if it was) so the client may retry.
        """
        if not token:
            raise AuthFailure("Missing token")
        principal = await self._verifier.verify(token)
        session = self.register(principal.user_id, connection_id)
        logger.info("Connection %s authenticated as user %s", connection_id, session.user_id)
        return session

    def deregister(self, connection_id: str) -> int | None:
        """Forget a connection. Returns the user id if that user is now offline."""
        self._transports.pop(connection_id, None)
        return self._unbind(connection_id)

    def _unbind(self, connection_id: str) -> int | None:
        session = self._sessions.pop(connection_id, None)
        if session is None:
            return None
        conns = self._by_user.get(session.user_id)
        if conns is not None:
            conns.discard(connection_id)
            if not conns:
                del self._by_user[session.user_id]
                return session.user_id
        return None

    def session(self, connection_id: str) -> Session | None:
        return self._sessions.get(connection_id)

    def user_for(self, connection_id: str) -> int | None:
        session = self._sessions.get(connection_id)
        return session.user_id if session else None

    def is_authenticated(self, connection_id: str) -> bool:
        return connection_id in self._sessions

    def transport(self, connection_id: str) -> Transport | None:
        return self._transports.get(connection_id)

    def connections_for(self, user_id: int) -> set[str]:
        return set(self._by_user.get(user_id, ()))

    def is_online(self, user_id: int) -> bool:
        return user_id in self._by_user

    def online_users(self) -> set[int]:
        return set(self._by_user)

    def authenticated_connections(self) -> set[str]:
        return set(self._sessions)

    def __len__(self) -> int:
        return len(self._transports)

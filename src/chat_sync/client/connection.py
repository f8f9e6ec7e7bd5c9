"""Client connection controller: connect, authenticate, reconnect with backoff."""
from __future__ import annotations

import asyncio
import json
import logging
import uuid
from enum import StrEnum
from typing import Any, Awaitable, Callable

from chat_sync.application.exceptions import (
    AppError,
    AuthFailure,
    ReconnectExhausted,
    TransportDrop,
)
from chat_sync.client.backoff import ReconnectPolicy
from chat_sync.client.config import ClientSettings
from chat_sync.client.events import EventBus
from chat_sync.client.transport import Channel, Transport, WebsocketsTransport
from chat_sync.domain.events.delivery import ClientCommand, EventKind

logger = logging.getLogger(__name__)


class ConnectionState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    ACTIVE = "active"
    RECONNECTING = "reconnecting"


StateListener = Callable[[ConnectionState, AppError | None], None]
Sleep = Callable[[float], Awaitable[None]]


class ConnectionController:
    """Owns one logical connection to the chat server.

    An unexpected drop while ACTIVE starts a reconnect cycle that waits
    ``policy.delay_for(attempt)`` before each try and re-joins the rooms
    held before the drop. A rejected credential is terminal: the token is
    forgotten and the caller has to supply a fresh one.
    """

    def __init__(
        self,
        url: str,
        *,
        transport: Transport | None = None,
        policy: ReconnectPolicy | None = None,
        bus: EventBus | None = None,
        sleep: Sleep = asyncio.sleep,
        auth_timeout: float = 10.0,
    ) -> None:
        self._url = url
        self._transport = transport or WebsocketsTransport()
        self._policy = policy or ReconnectPolicy()
        self.bus = bus or EventBus()
        self._sleep = sleep
        self._auth_timeout = auth_timeout

        self.state = ConnectionState.DISCONNECTED
        self.user_id: int | None = None
        self.last_error: AppError | None = None
        self._token: str | None = None
        self._channel: Channel | None = None
        self._rooms: set[str] = set()
        self._reader_task: asyncio.Task[None] | None = None
        self._reconnect_task: asyncio.Task[None] | None = None
        self._listeners: list[StateListener] = []

    @classmethod
    def from_settings(
        cls,
        settings: ClientSettings,
        *,
        transport: Transport | None = None,
        bus: EventBus | None = None,
    ) -> ConnectionController:
        return cls(
            settings.SERVER_URL,
            transport=transport,
            policy=ReconnectPolicy.from_settings(settings),
            bus=bus,
        )

    # -- state -----------------------------------------------------------

    @property
    def rooms(self) -> frozenset[str]:
        return frozenset(self._rooms)

    @property
    def is_active(self) -> bool:
        return self.state == ConnectionState.ACTIVE

    def add_state_listener(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def _set_state(self, state: ConnectionState, error: AppError | None = None) -> None:
        if error is not None:
            self.last_error = error
        if state == self.state and error is None:
            return
        logger.debug("Connection state %s -> %s", self.state, state)
        self.state = state
        for listener in list(self._listeners):
            try:
                listener(state, error)
            except Exception:
                logger.exception("State listener failed")

    # -- lifecycle -------------------------------------------------------

    async def connect(self, token: str) -> None:
        """Open, authenticate and go ACTIVE.

        Raises AuthFailure if the server rejects the token and TransportDrop
        if the socket cannot be opened; both leave the controller DISCONNECTED.
        """
        if self.state != ConnectionState.DISCONNECTED:
            await self.disconnect()
        self._token = token
        self.last_error = None
        try:
            await self._establish()
        except TransportDrop as exc:
            self._set_state(ConnectionState.DISCONNECTED, exc)
            raise

    async def resume(self) -> None:
        """Reconnect with the last accepted token, e.g. when the app returns to foreground."""
        if self.state != ConnectionState.DISCONNECTED:
            return
        if not self._token:
            raise AuthFailure("No credential to resume with")
        await self.connect(self._token)

    async def disconnect(self) -> None:
        """Close on purpose. Cancels any pending reconnect; no retry follows."""
        current = asyncio.current_task()
        for task in (self._reconnect_task, self._reader_task):
            if task is None or task is current or task.done():
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._reconnect_task = None
        self._reader_task = None
        await self._close_channel()
        self._set_state(ConnectionState.DISCONNECTED)

    async def _establish(self) -> None:
        self._set_state(ConnectionState.CONNECTING)
        channel = await self._transport.open(self._url)
        self._channel = channel

        self._set_state(ConnectionState.AUTHENTICATING)
        try:
            await channel.send(_frame(ClientCommand.AUTHENTICATE, {"token": self._token}))
            self.user_id = await asyncio.wait_for(
                self._await_auth(channel), timeout=self._auth_timeout,
            )
        except AuthFailure as exc:
            await self._close_channel()
            self._token = None
            self._set_state(ConnectionState.DISCONNECTED, exc)
            raise
        except TimeoutError as exc:
            await self._close_channel()
            raise TransportDrop("Timed out waiting for authentication") from exc
        except TransportDrop:
            await self._close_channel()
            raise

        self._set_state(ConnectionState.ACTIVE)
        self._reader_task = asyncio.create_task(self._read_loop(channel), name="chat-client-reader")
        await self.bus.emit(EventKind.AUTHENTICATED, {"user_id": self.user_id})

        for chat_id in sorted(self._rooms):
            try:
                await channel.send(_frame(ClientCommand.JOIN_CHAT, {"chat_id": chat_id}))
            except TransportDrop:
                # the reader notices the drop and starts the next cycle
                break

    async def _await_auth(self, channel: Channel) -> int:
        while True:
            msg = _parse(await channel.recv())
            if msg is None:
                continue
            kind, data = msg
            if kind == EventKind.AUTHENTICATED:
                return int(data["user_id"])
            if kind == EventKind.AUTHENTICATION_ERROR:
                raise AuthFailure(data.get("detail") or "Authentication rejected")

    async def _read_loop(self, channel: Channel) -> None:
        try:
            while True:
                msg = _parse(await channel.recv())
                if msg is not None:
                    await self.bus.emit(*msg)
        except TransportDrop as exc:
            if self._channel is not channel:
                return
            self._channel = None
            logger.warning("Connection dropped: %s", exc.detail)
            self._reconnect_task = asyncio.create_task(self._reconnect(), name="chat-client-reconnect")

    async def _reconnect(self) -> None:
        self._set_state(ConnectionState.RECONNECTING)
        for attempt, delay in enumerate(self._policy.delays()):
            logger.info("Reconnect attempt %d in %.1fs", attempt + 1, delay)
            await self._sleep(delay)
            try:
                await self._establish()
            except AuthFailure:
                logger.warning("Credential rejected during reconnect")
                return
            except TransportDrop as exc:
                logger.info("Reconnect attempt %d failed: %s", attempt + 1, exc.detail)
                self._set_state(ConnectionState.RECONNECTING)
                continue
            logger.info("Reconnected after %d attempt(s)", attempt + 1)
            return

        exhausted = ReconnectExhausted(
            f"Gave up after {self._policy.max_attempts} reconnect attempts"
        )
        logger.error("%s", exhausted.detail)
        self._set_state(ConnectionState.DISCONNECTED, exhausted)

    async def _close_channel(self) -> None:
        channel, self._channel = self._channel, None
        if channel is None:
            return
        try:
            await channel.close()
        except Exception:
            logger.debug("Error closing channel", exc_info=True)

    # -- commands --------------------------------------------------------

    async def join(self, chat_id: str) -> None:
        self._rooms.add(str(chat_id))
        if self.is_active:
            await self._send(ClientCommand.JOIN_CHAT, {"chat_id": str(chat_id)})

    async def leave(self, chat_id: str) -> None:
        self._rooms.discard(str(chat_id))
        if self.is_active:
            await self._send(ClientCommand.LEAVE_CHAT, {"chat_id": str(chat_id)})

    async def send_message(
        self,
        chat_id: str,
        content: str,
        *,
        client_msg_id: str | None = None,
        **extra: Any,
    ) -> str:
        """Send a message; returns the idempotency key so a retry can reuse it."""
        key = client_msg_id or str(uuid.uuid4())
        await self._send(
            ClientCommand.SEND_MESSAGE,
            {"chat_id": str(chat_id), "client_msg_id": key, "content": content, **extra},
        )
        return key

    async def typing(self, chat_id: str, is_typing: bool) -> None:
        if self.is_active:
            await self._send(ClientCommand.TYPING, {"chat_id": str(chat_id), "is_typing": is_typing})

    async def announce_online(self) -> None:
        await self._send(ClientCommand.USER_ONLINE, {})

    async def ping(self) -> None:
        await self._send(ClientCommand.PING, {})

    async def _send(self, command: ClientCommand, data: dict[str, Any]) -> None:
        if self._channel is None or not self.is_active:
            raise TransportDrop("Not connected")
        await self._channel.send(_frame(command, data))


def _frame(command: str, data: dict[str, Any]) -> str:
    return json.dumps({"type": str(command), "data": data})


def _parse(raw: str) -> tuple[str, dict[str, Any]] | None:
    try:
        msg = json.loads(raw)
        return str(msg["type"]), msg.get("data") or {}
    except (ValueError, KeyError, TypeError):
        logger.warning("Ignoring malformed frame: %.200s", raw)
        return None

"""Socket transport used by the connection controller."""
from __future__ import annotations

from typing import Protocol

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from chat_sync.application.exceptions import TransportDrop


class Channel(Protocol):
    async def send(self, data: str) -> None: ...

    async def recv(self) -> str:
        """Next text frame. Raises TransportDrop once the socket is gone."""
        ...

    async def close(self) -> None: ...


class Transport(Protocol):
    async def open(self, url: str) -> Channel: ...


class WebsocketsChannel:
    def __init__(self, conn: ClientConnection) -> None:
        self._conn = conn

    async def send(self, data: str) -> None:
        try:
            await self._conn.send(data)
        except ConnectionClosed as exc:
            raise TransportDrop(f"Connection closed: {exc}") from exc

    async def recv(self) -> str:
        try:
            raw = await self._conn.recv()
        except ConnectionClosed as exc:
            raise TransportDrop(f"Connection closed: {exc}") from exc
        return raw if isinstance(raw, str) else raw.decode()

    async def close(self) -> None:
        await self._conn.close()


class WebsocketsTransport:
    def __init__(self, open_timeout: float = 10.0) -> None:
        self._open_timeout = open_timeout

    async def open(self, url: str) -> Channel:
        try:
            conn = await connect(url, open_timeout=self._open_timeout)
        except (OSError, TimeoutError, InvalidHandshake, InvalidURI) as exc:
            raise TransportDrop(f"Could not connect to {url}: {exc}") from exc
        return WebsocketsChannel(conn)

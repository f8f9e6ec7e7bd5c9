from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from pydantic import ValidationError as PayloadError

from chat_sync.api.deps import (
    ManagerDep,
    PresenceDep,
    PublisherDep,
    UoWFactory,
    UoWFactoryDep,
)
from chat_sync.api.middleware.correlation_id import correlation_id_ctx
from chat_sync.application.dto.message import SendMessageDTO
from chat_sync.application.dto.principal import Principal
from chat_sync.application.exceptions import (
    AppError,
    AuthFailure,
    ConflictError,
    ForbiddenError,
    MessageDeletedConflict,
    NotFoundError,
    Unauthenticated,
    ValidationError,
)
from chat_sync.application.ports.bus import EventPublisher
from chat_sync.application.ports.presence import PresenceTracker
from chat_sync.config import settings
from chat_sync.domain.events.delivery import ClientCommand, EventKind
from chat_sync.infrastructure.ws.manager import ConnectionManager
from chat_sync.infrastructure.ws.protocol import (
    AuthenticatePayload,
    ChatRefPayload,
    SendMessagePayload,
    TypingPayload,
    WsInbound,
    error_frame,
    frame,
)
from chat_sync.services import chat_service, events, message_service

logger = logging.getLogger(__name__)
router = APIRouter(tags=["websocket"])

_ERROR_CODES: list[tuple[type[AppError], str]] = [
    (Unauthenticated, "unauthenticated"),
    (ForbiddenError, "forbidden"),
    (NotFoundError, "not_found"),
    (MessageDeletedConflict, "message_deleted"),
    (ConflictError, "conflict"),
    (ValidationError, "invalid_data"),
]


def _error_code(exc: AppError) -> str:
    for exc_type, code in _ERROR_CODES:
        if isinstance(exc, exc_type):
            return code
    return "error"


@dataclass
class _Socket:
    ws: WebSocket
    connection_id: str
    manager: ConnectionManager
    publisher: EventPublisher
    presence: PresenceTracker
    uow_factory: UoWFactory

    async def send(self, raw: str) -> None:
        await self.ws.send_text(raw)

    def require_user(self) -> Principal:
        user_id = self.manager.registry.user_for(self.connection_id)
        if user_id is None:
            raise Unauthenticated("Authenticate first")
        return Principal(user_id=user_id)


@router.websocket("/ws/chat")
async def ws_chat(
    websocket: WebSocket,
    manager: ManagerDep,
    publisher: PublisherDep,
    presence: PresenceDep,
    uow_factory: UoWFactoryDep,
    token: str | None = Query(None),
) -> None:
    connection_id = await manager.connect(websocket)
    correlation_id_ctx.set(connection_id)
    sock = _Socket(websocket, connection_id, manager, publisher, presence, uow_factory)

    heartbeat_task = asyncio.create_task(
        _heartbeat(websocket), name=f"ws-heartbeat-{connection_id}",
    )
    try:
        if token:
            await _handle_authenticate(sock, {"token": token})
        await _read_loop(sock)
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("WS error for %s", connection_id)
    finally:
        heartbeat_task.cancel()
        went_offline = manager.disconnect(connection_id)
        if went_offline is not None:
            await asyncio.shield(_node_presence_changed(sock, went_offline, online=False))


async def _heartbeat(ws: WebSocket) -> None:
    interval = settings.WS_HEARTBEAT_SECONDS
    try:
        while True:
            await asyncio.sleep(interval)
            await ws.send_text(frame(EventKind.PONG))
    except asyncio.CancelledError:
        pass
    except Exception:
        logger.debug("Heartbeat stopped", exc_info=True)


async def _read_loop(sock: _Socket) -> None:
    while True:
        raw = await sock.ws.receive_text()
        try:
            msg = WsInbound.model_validate_json(raw)
        except PayloadError:
            await sock.send(error_frame("invalid_payload"))
            continue

        try:
            command = ClientCommand(msg.type)
        except ValueError:
            await sock.send(error_frame("unknown_type", type=msg.type))
            continue

        try:
            await _HANDLERS[command](sock, msg.data)
        except PayloadError as exc:
            await sock.send(
                error_frame("invalid_payload", str(exc.errors()[0]["msg"]), type=msg.type)
            )
        except AppError as exc:
            await sock.send(error_frame(_error_code(exc), exc.detail, type=msg.type))
        except WebSocketDisconnect:
            raise
        except Exception:
            logger.exception("WS command %s failed on %s", msg.type, sock.connection_id)
            await sock.send(error_frame("internal_error", type=msg.type))


async def _announce_presence(
    manager: ConnectionManager,
    publisher: EventPublisher,
    user_id: int,
    *,
    online: bool,
) -> None:
    try:
        await publisher.publish(
            events.presence(user_id, online, manager.registry.clock.now())
        )
    except Exception:
        logger.exception("Failed to publish presence for user %s", user_id)


async def _node_presence_changed(sock: _Socket, user_id: int, *, online: bool) -> None:
    """The user's first session on this node opened, or their last one closed.

    Announced only when the whole cluster agrees the user changed state.
    """
    try:
        if online:
            changed = await sock.presence.node_online(user_id)
        else:
            changed = await sock.presence.node_offline(user_id)
    except Exception:
        logger.exception("Presence tracker failed for user %s", user_id)
        changed = True
    if changed:
        await _announce_presence(sock.manager, sock.publisher, user_id, online=online)


async def _handle_authenticate(sock: _Socket, data: dict[str, Any]) -> None:
    payload = AuthenticatePayload.model_validate(data)
    registry = sock.manager.registry
    bound_to = registry.user_for(sock.connection_id)
    try:
        session, replaced = await sock.manager.authenticate(sock.connection_id, payload.token)
    except AuthFailure as exc:
        logger.debug("WS auth failed for %s: %s", sock.connection_id, exc.detail)
        await sock.send(frame(EventKind.AUTHENTICATION_ERROR, {"detail": exc.detail}))
        return

    await sock.send(frame(EventKind.AUTHENTICATED, {"user_id": session.user_id}))

    if replaced is not None:
        await _node_presence_changed(sock, replaced, online=False)
    first_here = registry.connections_for(session.user_id) == {sock.connection_id}
    if bound_to != session.user_id and first_here:
        await _node_presence_changed(sock, session.user_id, online=True)


async def _handle_join(sock: _Socket, data: dict[str, Any]) -> None:
    payload = ChatRefPayload.model_validate(data)
    principal = sock.require_user()
    async with sock.uow_factory() as uow:
        await chat_service.get_chat(payload.chat_id, principal, uow)
    sock.manager.rooms.join(sock.connection_id, payload.chat_id)


async def _handle_leave(sock: _Socket, data: dict[str, Any]) -> None:
    payload = ChatRefPayload.model_validate(data)
    sock.manager.rooms.leave(sock.connection_id, payload.chat_id)


async def _handle_send(sock: _Socket, data: dict[str, Any]) -> None:
    payload = SendMessagePayload.model_validate(data)
    principal = sock.require_user()
    dto = SendMessageDTO(
        chat_id=payload.chat_id,
        client_msg_id=payload.client_msg_id,
        content=payload.content,
        type=payload.type,
        media_url=payload.media_url,
        reply_to_id=payload.reply_to_id,
    )
    async with sock.uow_factory() as uow:
        await message_service.send_message(dto, principal, uow)
    # the sender's echo arrives as new-message through the outbox


async def _handle_typing(sock: _Socket, data: dict[str, Any]) -> None:
    payload = TypingPayload.model_validate(data)
    principal = sock.require_user()
    if not sock.manager.rooms.is_subscribed(sock.connection_id, payload.chat_id):
        raise ForbiddenError("Join the chat before sending typing updates")
    await sock.publisher.publish(
        events.typing(payload.chat_id, principal.user_id, payload.is_typing)
    )


async def _handle_user_online(sock: _Socket, data: dict[str, Any]) -> None:
    principal = sock.require_user()
    await _announce_presence(sock.manager, sock.publisher, principal.user_id, online=True)


async def _handle_ping(sock: _Socket, data: dict[str, Any]) -> None:
    await sock.send(frame(EventKind.PONG))


_HANDLERS: dict[ClientCommand, Callable[[_Socket, dict[str, Any]], Awaitable[None]]] = {
    ClientCommand.AUTHENTICATE: _handle_authenticate,
    ClientCommand.JOIN_CHAT: _handle_join,
    ClientCommand.LEAVE_CHAT: _handle_leave,
    ClientCommand.SEND_MESSAGE: _handle_send,
    ClientCommand.TYPING: _handle_typing,
    ClientCommand.USER_ONLINE: _handle_user_online,
    ClientCommand.PING: _handle_ping,
}

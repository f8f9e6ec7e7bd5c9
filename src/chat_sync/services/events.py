"""Builders for the realtime events produced by persisted writes.

Payloads are JSON-ready (ids as strings, timestamps as ISO-8601) because
they are stored in the outbox and travel through Redis unchanged.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from chat_sync.application.dto.events import RealtimeEvent
from chat_sync.domain.entities.chat import Chat
from chat_sync.domain.entities.message import Message, Reaction
from chat_sync.domain.events.delivery import EventKind
from chat_sync.domain.value_objects.enums import PresenceStatus


def _iso(ts: datetime | None) -> str | None:
    return ts.isoformat() if ts else None


def reactions_payload(reactions: list[Reaction]) -> list[dict[str, Any]]:
    return [
        {"user_id": r.user_id, "emoji": r.emoji, "created_at": _iso(r.created_at)}
        for r in reactions
    ]


def message_payload(msg: Message) -> dict[str, Any]:
    # tombstones never carry the original content
    return {
        "id": str(msg.id),
        "chat_id": str(msg.chat_id),
        "sender_id": msg.sender_id,
        "type": msg.type,
        "content": "" if msg.is_deleted else msg.content,
        "media_url": None if msg.is_deleted else msg.media_url,
        "reply_to_id": str(msg.reply_to_id) if msg.reply_to_id else None,
        "client_msg_id": str(msg.client_msg_id),
        "created_at": _iso(msg.created_at),
        "is_edited": msg.is_edited,
        "edited_at": _iso(msg.edited_at),
        "is_deleted": msg.is_deleted,
        "deleted_at": _iso(msg.deleted_at),
        "reactions": reactions_payload(msg.reactions),
        "read_by": [
            {"user_id": r.user_id, "read_at": _iso(r.read_at)} for r in msg.read_by
        ],
    }


def chat_payload(chat: Chat) -> dict[str, Any]:
    return {
        "id": str(chat.id),
        "type": chat.type,
        "name": chat.display_name,
        "participants": [
            {"user_id": p.user_id, "role": p.role} for p in chat.participants
        ],
        "last_message_at": _iso(chat.last_message_at),
        "created_at": _iso(chat.created_at),
    }


def new_message(msg: Message) -> RealtimeEvent:
    return RealtimeEvent(
        event_type=EventKind.NEW_MESSAGE,
        data={"chat_id": str(msg.chat_id), "message": message_payload(msg)},
        actor_id=msg.sender_id,
    )


def message_updated(msg: Message, actor_id: int) -> RealtimeEvent:
    return RealtimeEvent(
        event_type=EventKind.MESSAGE_UPDATED,
        data={"chat_id": str(msg.chat_id), "message": message_payload(msg)},
        actor_id=actor_id,
    )


def message_deleted(msg: Message, actor_id: int) -> RealtimeEvent:
    return RealtimeEvent(
        event_type=EventKind.MESSAGE_DELETED,
        data={
            "chat_id": str(msg.chat_id),
            "message_id": str(msg.id),
            "timestamp": _iso(msg.deleted_at),
        },
        actor_id=actor_id,
    )


def reactions_changed(
    kind: EventKind,
    msg: Message,
    reactions: list[Reaction],
    actor_id: int,
    timestamp: datetime,
) -> RealtimeEvent:
    return RealtimeEvent(
        event_type=kind,
        data={
            "chat_id": str(msg.chat_id),
            "message_id": str(msg.id),
            "reactions": reactions_payload(reactions),
            "timestamp": _iso(timestamp),
        },
        actor_id=actor_id,
    )


def messages_read(chat_id: UUID, user_id: int, read_at: datetime) -> RealtimeEvent:
    return RealtimeEvent(
        event_type=EventKind.MESSAGES_READ,
        data={"chat_id": str(chat_id), "user_id": user_id, "timestamp": _iso(read_at)},
        actor_id=user_id,
    )


def chat_created(chat: Chat, actor_id: int) -> RealtimeEvent:
    return RealtimeEvent(
        event_type=EventKind.CHAT_UPDATE,
        data={"type": "new-chat", "chat": chat_payload(chat)},
        actor_id=actor_id,
        recipients=chat.participant_ids,
    )


def typing(chat_id: UUID, user_id: int, is_typing: bool) -> RealtimeEvent:
    return RealtimeEvent(
        event_type=EventKind.TYPING,
        data={"chat_id": str(chat_id), "user_id": user_id, "is_typing": is_typing},
        actor_id=user_id,
    )


def presence(user_id: int, online: bool, timestamp: datetime) -> RealtimeEvent:
    return RealtimeEvent(
        event_type=EventKind.USER_STATUS_CHANGE,
        data={
            "user_id": user_id,
            "status": PresenceStatus.ONLINE if online else PresenceStatus.OFFLINE,
            "timestamp": _iso(timestamp),
        },
        actor_id=user_id,
    )

"""Local projection of chats and messages, fed by server events."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Callable

from chat_sync.client.events import EventBus
from chat_sync.domain.events.delivery import EventKind
from chat_sync.domain.value_objects.enums import PresenceStatus

logger = logging.getLogger(__name__)


def _ts(raw: str | None) -> datetime | None:
    return datetime.fromisoformat(raw) if raw else None


@dataclass(frozen=True, slots=True)
class MessageEnvelope:
    id: str
    chat_id: str
    sender_id: int
    type: str
    content: str
    created_at: datetime
    client_msg_id: str | None = None
    media_url: str | None = None
    reply_to_id: str | None = None
    is_edited: bool = False
    edited_at: datetime | None = None
    is_deleted: bool = False
    deleted_at: datetime | None = None
    reactions: list[dict[str, Any]] = field(default_factory=list)
    read_by: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> MessageEnvelope:
        return cls(
            id=str(data["id"]),
            chat_id=str(data["chat_id"]),
            sender_id=int(data["sender_id"]),
            type=data.get("type", "text"),
            content=data.get("content") or "",
            created_at=_ts(data["created_at"]),  # type: ignore[arg-type]
            client_msg_id=data.get("client_msg_id"),
            media_url=data.get("media_url"),
            reply_to_id=data.get("reply_to_id"),
            is_edited=bool(data.get("is_edited")),
            edited_at=_ts(data.get("edited_at")),
            is_deleted=bool(data.get("is_deleted")),
            deleted_at=_ts(data.get("deleted_at")),
            reactions=list(data.get("reactions") or []),
            read_by=list(data.get("read_by") or []),
        )

    def tombstone(self, deleted_at: datetime | None) -> MessageEnvelope:
        return replace(self, is_deleted=True, deleted_at=deleted_at, content="", media_url=None)


@dataclass(slots=True)
class ChatSummary:
    id: str
    type: str
    name: str
    participant_ids: list[int]
    created_at: datetime
    last_message: MessageEnvelope | None = None
    last_message_at: datetime | None = None
    unread_count: int = 0

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> ChatSummary:
        return cls(
            id=str(data["id"]),
            type=data.get("type", "individual"),
            name=data.get("name") or "",
            participant_ids=[int(p["user_id"]) for p in data.get("participants", [])],
            created_at=_ts(data["created_at"]),  # type: ignore[arg-type]
            last_message_at=_ts(data.get("last_message_at")),
            unread_count=int(data.get("unread_count", 0)),
        )

    @property
    def activity_at(self) -> datetime:
        return self.last_message_at or self.created_at


class ChatStore:
    """Applies server events to local state.

    Every handler tolerates replays: a duplicate ``new-message`` or a second
    ``message-deleted`` leaves the state unchanged. ``apply`` returns whether
    anything changed so a UI can skip redundant renders.
    """

    def __init__(self, user_id: int | None = None) -> None:
        self.user_id = user_id
        self.chats: dict[str, ChatSummary] = {}
        self._messages: dict[str, dict[str, MessageEnvelope]] = {}
        self._presence: dict[int, tuple[str, datetime]] = {}
        self._open: set[str] = set()
        self._appliers = {
            EventKind.NEW_MESSAGE: self._on_new_message,
            EventKind.MESSAGE_UPDATED: self._on_message_updated,
            EventKind.MESSAGE_DELETED: self._on_message_deleted,
            EventKind.REACTION_ADDED: self._on_reactions,
            EventKind.REACTION_REMOVED: self._on_reactions,
            EventKind.MESSAGES_READ: self._on_messages_read,
            EventKind.USER_STATUS_CHANGE: self._on_status_change,
            EventKind.CHAT_UPDATE: self._on_chat_update,
        }

    def bind(self, bus: EventBus, *, scope: str = "store") -> None:
        for kind in self._appliers:
            bus.on(kind, self._handler_for(kind), scope=scope)

    def _handler_for(self, kind: str) -> Callable[[dict[str, Any]], None]:
        def _handle(data: dict[str, Any]) -> None:
            self.apply(kind, data)

        return _handle

    def apply(self, kind: str, data: dict[str, Any]) -> bool:
        applier = self._appliers.get(kind)
        if applier is None:
            return False
        return applier(data)

    # -- loading ---------------------------------------------------------

    def load_chats(self, payloads: list[dict[str, Any]]) -> None:
        for data in payloads:
            summary = ChatSummary.from_payload(data)
            if summary.id in self._open:
                summary.unread_count = 0
            self.chats[summary.id] = summary

    def load_history(self, chat_id: str, payloads: list[dict[str, Any]]) -> None:
        bucket = self._messages.setdefault(chat_id, {})
        for data in payloads:
            msg = MessageEnvelope.from_payload(data)
            bucket[msg.id] = msg

    def open_chat(self, chat_id: str) -> None:
        self._open.add(chat_id)
        summary = self.chats.get(chat_id)
        if summary is not None:
            summary.unread_count = 0

    def close_chat(self, chat_id: str) -> None:
        self._open.discard(chat_id)

    # -- queries ---------------------------------------------------------

    def chat_list(self) -> list[ChatSummary]:
        return sorted(self.chats.values(), key=lambda c: c.activity_at, reverse=True)

    def messages(self, chat_id: str) -> list[MessageEnvelope]:
        return sorted(
            self._messages.get(chat_id, {}).values(),
            key=lambda m: (m.created_at, m.id),
        )

    def message(self, chat_id: str, message_id: str) -> MessageEnvelope | None:
        return self._messages.get(chat_id, {}).get(message_id)

    def is_online(self, user_id: int) -> bool:
        entry = self._presence.get(user_id)
        return entry is not None and entry[0] == PresenceStatus.ONLINE

    def unread_total(self) -> int:
        return sum(c.unread_count for c in self.chats.values())

    # -- appliers --------------------------------------------------------

    def _on_new_message(self, data: dict[str, Any]) -> bool:
        msg = MessageEnvelope.from_payload(data["message"])
        bucket = self._messages.setdefault(msg.chat_id, {})
        if msg.id in bucket:
            return False
        bucket[msg.id] = msg

        summary = self.chats.get(msg.chat_id)
        if summary is not None:
            if summary.last_message_at is None or msg.created_at >= summary.last_message_at:
                summary.last_message = msg
                summary.last_message_at = msg.created_at
            if msg.sender_id != self.user_id and msg.chat_id not in self._open:
                summary.unread_count += 1
        return True

    def _on_message_updated(self, data: dict[str, Any]) -> bool:
        msg = MessageEnvelope.from_payload(data["message"])
        bucket = self._messages.setdefault(msg.chat_id, {})
        existing = bucket.get(msg.id)
        if existing is not None and existing.is_deleted:
            return False
        bucket[msg.id] = msg
        return True

    def _on_message_deleted(self, data: dict[str, Any]) -> bool:
        chat_id, message_id = str(data["chat_id"]), str(data["message_id"])
        existing = self._messages.get(chat_id, {}).get(message_id)
        if existing is None or existing.is_deleted:
            return False
        tomb = existing.tombstone(_ts(data.get("timestamp")))
        self._messages[chat_id][message_id] = tomb
        summary = self.chats.get(chat_id)
        if summary is not None and summary.last_message is not None and summary.last_message.id == message_id:
            summary.last_message = tomb
        return True

    def _on_reactions(self, data: dict[str, Any]) -> bool:
        chat_id, message_id = str(data["chat_id"]), str(data["message_id"])
        existing = self._messages.get(chat_id, {}).get(message_id)
        if existing is None or existing.is_deleted:
            return False
        self._messages[chat_id][message_id] = replace(
            existing, reactions=list(data.get("reactions") or []),
        )
        return True

    def _on_messages_read(self, data: dict[str, Any]) -> bool:
        chat_id = str(data["chat_id"])
        reader = int(data["user_id"])
        read_at = _ts(data.get("timestamp"))

        if reader == self.user_id:
            summary = self.chats.get(chat_id)
            if summary is None or summary.unread_count == 0:
                return False
            summary.unread_count = 0
            return True

        changed = False
        bucket = self._messages.get(chat_id, {})
        for message_id, msg in list(bucket.items()):
            if msg.sender_id != self.user_id:
                continue
            if read_at is not None and msg.created_at > read_at:
                continue
            if any(r.get("user_id") == reader for r in msg.read_by):
                continue
            receipt = {"user_id": reader, "read_at": data.get("timestamp")}
            bucket[message_id] = replace(msg, read_by=[*msg.read_by, receipt])
            changed = True
        return changed

    def _on_status_change(self, data: dict[str, Any]) -> bool:
        user_id = int(data["user_id"])
        status = str(data["status"])
        at = _ts(data.get("timestamp"))
        if at is None:
            return False
        current = self._presence.get(user_id)
        if current is not None and current[1] > at:
            logger.debug("Ignoring stale presence for user %s", user_id)
            return False
        self._presence[user_id] = (status, at)
        return True

    def _on_chat_update(self, data: dict[str, Any]) -> bool:
        if data.get("type") != "new-chat" or "chat" not in data:
            return False
        summary = ChatSummary.from_payload(data["chat"])
        if summary.id in self.chats:
            return False
        self.chats[summary.id] = summary
        return True

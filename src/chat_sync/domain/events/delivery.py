"""Event contract shared by the server dispatcher and the client SDK.

Every realtime event has a name on the wire and a delivery rule that
decides which connections receive it.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class EventKind(StrEnum):
    # server -> client, persisted writes
    NEW_MESSAGE = "new-message"
    MESSAGE_UPDATED = "message-updated"
    MESSAGE_DELETED = "message-deleted"
    REACTION_ADDED = "message-reaction-added"
    REACTION_REMOVED = "message-reaction-removed"
    MESSAGES_READ = "messages-read"
    CHAT_UPDATE = "chat-update"
    # server -> client, ephemeral
    TYPING = "typing"
    USER_STATUS_CHANGE = "user-status-change"
    # session control
    AUTHENTICATED = "authenticated"
    AUTHENTICATION_ERROR = "authentication-error"
    ERROR = "error"
    PONG = "pong"


class ClientCommand(StrEnum):
    AUTHENTICATE = "authenticate"
    JOIN_CHAT = "join-chat"
    LEAVE_CHAT = "leave-chat"
    SEND_MESSAGE = "send-message"
    TYPING = "typing"
    USER_ONLINE = "user-online"
    PING = "ping"


class Audience(StrEnum):
    ROOM = "room"
    EVERYONE = "everyone"
    PARTICIPANTS = "participants"


@dataclass(frozen=True, slots=True)
class DeliveryRule:
    audience: Audience
    exclude_actor: bool = False


DELIVERY_RULES: dict[EventKind, DeliveryRule] = {
    EventKind.NEW_MESSAGE: DeliveryRule(Audience.ROOM),
    EventKind.MESSAGE_UPDATED: DeliveryRule(Audience.ROOM),
    EventKind.MESSAGE_DELETED: DeliveryRule(Audience.ROOM),
    EventKind.REACTION_ADDED: DeliveryRule(Audience.ROOM),
    EventKind.REACTION_REMOVED: DeliveryRule(Audience.ROOM),
    EventKind.MESSAGES_READ: DeliveryRule(Audience.ROOM),
    EventKind.TYPING: DeliveryRule(Audience.ROOM, exclude_actor=True),
    EventKind.USER_STATUS_CHANGE: DeliveryRule(Audience.EVERYONE, exclude_actor=True),
    EventKind.CHAT_UPDATE: DeliveryRule(Audience.PARTICIPANTS),
}

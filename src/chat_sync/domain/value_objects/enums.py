from __future__ import annotations

from enum import StrEnum


class ChatType(StrEnum):
    INDIVIDUAL = "individual"
    GROUP = "group"


class ParticipantRole(StrEnum):
    ADMIN = "admin"
    MEMBER = "member"


class MessageType(StrEnum):
    TEXT = "text"
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    FILE = "file"
    LOCATION = "location"


class PresenceStatus(StrEnum):
    ONLINE = "online"
    OFFLINE = "offline"

from __future__ import annotations

from typing import Protocol

from chat_sync.application.repositories.chat import ChatReader, ChatWriter
from chat_sync.application.repositories.message import MessageReader, MessageWriter
from chat_sync.application.repositories.outbox import OutboxWriter
from chat_sync.application.repositories.participant import (
    ParticipantReader,
    ParticipantWriter,
)
from chat_sync.application.repositories.read_state import (
    ReadStateReader,
    ReadStateWriter,
)


class UnitOfWork(Protocol):
    chats: ChatReader
    chats_w: ChatWriter
    participants: ParticipantReader
    participants_w: ParticipantWriter
    messages: MessageReader
    messages_w: MessageWriter
    read_state: ReadStateReader
    read_state_w: ReadStateWriter
    outbox: OutboxWriter

    async def commit(self) -> None: ...
    async def rollback(self) -> None: ...
    async def flush(self) -> None: ...

"""Shared test fixtures."""
from __future__ import annotations

import itertools
import uuid
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Awaitable, Callable
from uuid import UUID

import pytest

from chat_sync.application.dto.events import RealtimeEvent
from chat_sync.application.dto.principal import Principal
from chat_sync.application.exceptions import AuthFailure
from chat_sync.application.repositories.outbox import OutboxRecord
from chat_sync.domain.entities.chat import Chat
from chat_sync.domain.entities.message import Message, Reaction
from chat_sync.domain.entities.participant import Participant
from chat_sync.domain.entities.read_state import ReadState
from chat_sync.domain.value_objects.enums import ChatType, MessageType, ParticipantRole

ALICE, BOB, CAROL = 1, 2, 3


@pytest.fixture
def alice() -> Principal:
    return Principal(user_id=ALICE)


@pytest.fixture
def bob() -> Principal:
    return Principal(user_id=BOB)


@pytest.fixture
def carol() -> Principal:
    return Principal(user_id=CAROL)


def make_chat(
    *,
    chat_id: UUID | None = None,
    type: ChatType = ChatType.INDIVIDUAL,
    members: tuple[int, ...] = (ALICE, BOB),
    admin: int | None = None,
    name: str | None = None,
) -> Chat:
    now = datetime.now(timezone.utc)
    cid = chat_id or uuid.uuid4()
    participants = [
        Participant(
            chat_id=cid,
            user_id=uid,
            role=ParticipantRole.ADMIN if uid == admin else ParticipantRole.MEMBER,
            joined_at=now,
        )
        for uid in members
    ]
    return Chat(
        id=cid,
        type=type.value,
        name=name,
        last_message_id=None,
        last_message_at=None,
        created_at=now,
        updated_at=now,
        participants=participants,
    )


def make_message(
    *,
    chat_id: UUID,
    sender_id: int = ALICE,
    content: str = "hello",
    created_at: datetime | None = None,
    is_deleted: bool = False,
) -> Message:
    return Message(
        id=uuid.uuid4(),
        chat_id=chat_id,
        sender_id=sender_id,
        type=MessageType.TEXT,
        content=content,
        client_msg_id=uuid.uuid4(),
        created_at=created_at or datetime.now(timezone.utc),
        is_deleted=is_deleted,
        deleted_at=datetime.now(timezone.utc) if is_deleted else None,
    )


@dataclass
class FakeChatReader:
    _store: dict[UUID, Chat] = field(default_factory=dict)

    async def get_by_id(self, chat_id: UUID) -> Chat | None:
        return self._store.get(chat_id)

    async def find_individual(self, user_a: int, user_b: int) -> Chat | None:
        for chat in self._store.values():
            if chat.type == ChatType.INDIVIDUAL and set(chat.participant_ids) == {user_a, user_b}:
                return chat
        return None

    async def list_for_user(
        self, user_id: int, *, cursor: str | None = None, limit: int = 20
    ) -> list[Chat]:
        chats = [c for c in self._store.values() if user_id in c.participant_ids]
        chats.sort(key=lambda c: c.last_message_at or c.created_at, reverse=True)
        return chats[:limit]


@dataclass
class FakeChatWriter:
    _reader: FakeChatReader
    locked_pairs: list[tuple[int, int]] = field(default_factory=list)

    async def lock_individual_pair(self, user_a: int, user_b: int) -> None:
        self.locked_pairs.append((min(user_a, user_b), max(user_a, user_b)))

    async def create(self, chat: Chat) -> Chat:
        self._reader._store[chat.id] = chat
        return chat

    async def touch_last_message(self, chat_id: UUID, message_id: UUID, ts: datetime) -> None:
        chat = self._reader._store[chat_id]
        self._reader._store[chat_id] = replace(
            chat, last_message_id=message_id, last_message_at=ts, updated_at=ts,
        )


@dataclass
class FakeParticipantReader:
    _participants: list[Participant] = field(default_factory=list)

    async def is_participant(self, chat_id: UUID, user_id: int) -> bool:
        return any(
            p.chat_id == chat_id and p.user_id == user_id for p in self._participants
        )

    async def list_participants(self, chat_id: UUID) -> list[Participant]:
        return [p for p in self._participants if p.chat_id == chat_id]


@dataclass
class FakeParticipantWriter:
    _reader: FakeParticipantReader

    async def add(self, participant: Participant) -> None:
        if not await self._reader.is_participant(participant.chat_id, participant.user_id):
            self._reader._participants.append(participant)


@dataclass
class FakeMessageReader:
    _messages: dict[UUID, Message] = field(default_factory=dict)
    _reactions: dict[UUID, dict[int, Reaction]] = field(default_factory=dict)

    async def get_by_id(self, message_id: UUID) -> Message | None:
        return self._messages.get(message_id)

    async def list_messages(
        self, chat_id: UUID, *, cursor: str | None = None, limit: int = 50
    ) -> list[Message]:
        rows = [m for m in self._messages.values() if m.chat_id == chat_id]
        rows.sort(key=lambda m: (m.created_at, m.id), reverse=True)
        return rows[:limit]

    async def list_reactions(self, message_ids: list[UUID]) -> dict[UUID, list[Reaction]]:
        return {
            mid: sorted(self._reactions[mid].values(), key=lambda r: r.created_at)
            for mid in message_ids
            if self._reactions.get(mid)
        }


@dataclass
class FakeMessageWriter:
    _reader: FakeMessageReader

    async def create_if_not_exists(self, message: Message) -> tuple[Message, bool]:
        existing = await self.get_by_client_msg_id(
            message.chat_id, message.sender_id, message.client_msg_id,
        )
        if existing is not None:
            return existing, False
        self._reader._messages[message.id] = message
        return message, True

    async def get_by_client_msg_id(
        self, chat_id: UUID, sender_id: int, client_msg_id: UUID
    ) -> Message | None:
        for m in self._reader._messages.values():
            if (
                m.chat_id == chat_id
                and m.sender_id == sender_id
                and m.client_msg_id == client_msg_id
            ):
                return m
        return None

    async def edit_content(
        self, message_id: UUID, content: str, edited_at: datetime
    ) -> Message | None:
        msg = self._reader._messages.get(message_id)
        if msg is None or msg.is_deleted:
            return None
        msg = replace(msg, content=content, is_edited=True, edited_at=edited_at)
        self._reader._messages[message_id] = msg
        return msg

    async def soft_delete(
        self, message_id: UUID, deleted_by: int, deleted_at: datetime
    ) -> Message | None:
        msg = self._reader._messages.get(message_id)
        if msg is None or msg.is_deleted:
            return None
        msg = replace(msg, is_deleted=True, deleted_at=deleted_at, deleted_by=deleted_by)
        self._reader._messages[message_id] = msg
        return msg

    async def lock(self, message_id: UUID) -> Message | None:
        return self._reader._messages.get(message_id)

    async def upsert_reaction(
        self, message_id: UUID, user_id: int, emoji: str, created_at: datetime
    ) -> None:
        self._reader._reactions.setdefault(message_id, {})[user_id] = Reaction(
            user_id=user_id, emoji=emoji, created_at=created_at,
        )

    async def remove_reaction(self, message_id: UUID, user_id: int) -> bool:
        return self._reader._reactions.get(message_id, {}).pop(user_id, None) is not None


@dataclass
class FakeReadStateReader:
    _states: dict[tuple[UUID, int], ReadState] = field(default_factory=dict)

    async def get(self, chat_id: UUID, user_id: int) -> ReadState | None:
        return self._states.get((chat_id, user_id))

    async def list_for_chat(self, chat_id: UUID) -> list[ReadState]:
        return [s for (cid, _), s in self._states.items() if cid == chat_id]

    async def unread_counts(self, user_id: int, chat_ids: list[UUID]) -> dict[UUID, int]:
        return {
            cid: self._states[(cid, user_id)].unread_count
            for cid in chat_ids
            if (cid, user_id) in self._states
        }

    def count(self, chat_id: UUID, user_id: int) -> int:
        state = self._states.get((chat_id, user_id))
        return state.unread_count if state else 0


@dataclass
class FakeReadStateWriter:
    _reader: FakeReadStateReader
    increments: list[tuple[UUID, list[int]]] = field(default_factory=list)
    locked_at: dict[tuple[UUID, int], datetime] = field(default_factory=dict)

    async def lock(self, chat_id: UUID, user_ids: list[int]) -> None:
        for uid in user_ids:
            self.locked_at[(chat_id, uid)] = datetime.now(timezone.utc)
            self._reader._states.setdefault(
                (chat_id, uid),
                ReadState(chat_id=chat_id, user_id=uid, unread_count=0, last_read_at=None),
            )

    async def increment_unread(self, chat_id: UUID, user_ids: list[int]) -> None:
        self.increments.append((chat_id, list(user_ids)))
        for uid in user_ids:
            self.locked_at[(chat_id, uid)] = datetime.now(timezone.utc)
            current = self._reader._states.get((chat_id, uid))
            self._reader._states[(chat_id, uid)] = ReadState(
                chat_id=chat_id,
                user_id=uid,
                unread_count=(current.unread_count if current else 0) + 1,
                last_read_at=current.last_read_at if current else None,
            )

    async def reset(self, chat_id: UUID, user_id: int, read_at: datetime) -> ReadState:
        state = ReadState(chat_id=chat_id, user_id=user_id, unread_count=0, last_read_at=read_at)
        self._reader._states[(chat_id, user_id)] = state
        return state


@dataclass
class FakeOutboxWriter:
    _records: list[OutboxRecord] = field(default_factory=list)
    _ids: itertools.count = field(default_factory=lambda: itertools.count(1))
    status: dict[int, str] = field(default_factory=dict)
    retry_at: dict[int, datetime] = field(default_factory=dict)

    async def add(self, event: RealtimeEvent) -> None:
        record = OutboxRecord(id=next(self._ids), payload=event.to_payload(), attempts=0)
        self._records.append(record)
        self.status[record.id] = "pending"

    async def fetch_pending(self, batch_size: int) -> list[OutboxRecord]:
        pending = [r for r in self._records if self.status[r.id] in ("pending", "failed")]
        return pending[:batch_size]

    async def mark_sent(self, ids: list[int]) -> None:
        for record_id in ids:
            self.status[record_id] = "sent"

    async def mark_failed(self, record_id: int, next_retry_at: datetime) -> None:
        self.status[record_id] = "failed"
        self.retry_at[record_id] = next_retry_at
        self._records = [
            replace(r, attempts=r.attempts + 1) if r.id == record_id else r
            for r in self._records
        ]

    async def mark_dead(self, record_id: int) -> None:
        self.status[record_id] = "dead"

    def drain(self) -> list[OutboxRecord]:
        pending = [r for r in self._records if self.status[r.id] == "pending"]
        for r in pending:
            self.status[r.id] = "sent"
        return pending

    @property
    def events(self) -> list[RealtimeEvent]:
        return [r.event for r in self._records]

    @property
    def event_types(self) -> list[str]:
        return [str(e.event_type) for e in self.events]


@dataclass
class FakeUoW:
    """In-memory UoW for unit tests."""

    chats: FakeChatReader = field(default_factory=FakeChatReader)
    chats_w: FakeChatWriter | None = None
    participants: FakeParticipantReader = field(default_factory=FakeParticipantReader)
    participants_w: FakeParticipantWriter | None = None
    messages: FakeMessageReader = field(default_factory=FakeMessageReader)
    messages_w: FakeMessageWriter | None = None
    read_state: FakeReadStateReader = field(default_factory=FakeReadStateReader)
    read_state_w: FakeReadStateWriter | None = None
    outbox: FakeOutboxWriter = field(default_factory=FakeOutboxWriter)
    on_commit: Callable[[FakeUoW], Awaitable[None]] | None = None
    commits: int = 0
    rollbacks: int = 0

    def __post_init__(self) -> None:
        if self.chats_w is None:
            self.chats_w = FakeChatWriter(self.chats)
        if self.participants_w is None:
            self.participants_w = FakeParticipantWriter(self.participants)
        if self.messages_w is None:
            self.messages_w = FakeMessageWriter(self.messages)
        if self.read_state_w is None:
            self.read_state_w = FakeReadStateWriter(self.read_state)

    def add_chat(self, chat: Chat) -> Chat:
        self.chats._store[chat.id] = chat
        self.participants._participants.extend(chat.participants)
        return chat

    def add_message(self, message: Message) -> Message:
        self.messages._messages[message.id] = message
        return message

    async def flush(self) -> None:
        pass

    async def commit(self) -> None:
        self.commits += 1
        if self.on_commit is not None:
            await self.on_commit(self)

    async def rollback(self) -> None:
        self.rollbacks += 1

    @property
    def _committed(self) -> bool:
        return self.commits > 0

    async def __aenter__(self) -> FakeUoW:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            await self.rollback()

    def factory(self) -> Callable[[], AbstractAsyncContextManager[FakeUoW]]:
        """Stand-in for ``open_uow``: every unit of work shares this store."""

        @asynccontextmanager
        async def _open() -> AsyncIterator[FakeUoW]:
            async with self as uow:
                yield uow

        return _open


@pytest.fixture
def uow() -> FakeUoW:
    return FakeUoW()


def minutes_ago(n: int) -> datetime:
    return datetime.now(timezone.utc) - timedelta(minutes=n)


class TokenIsUserId:
    """Verifier that accepts any all-digit token as that user's id."""

    async def verify(self, token: str) -> Principal:
        if not token.isdigit():
            raise AuthFailure("Invalid token")
        return Principal(user_id=int(token))


class FakeSocket:
    def __init__(self) -> None:
        self.sent: list[str] = []

    async def send_text(self, data: str) -> None:
        self.sent.append(data)


class BrokenSocket:
    async def send_text(self, data: str) -> None:
        raise ConnectionResetError("peer gone")


class FakePublisher:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.published: list[RealtimeEvent] = []

    async def publish(self, event: RealtimeEvent) -> None:
        if self.fail:
            raise ConnectionError("broker unavailable")
        self.published.append(event)

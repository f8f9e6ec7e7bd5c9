from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from chat_sync.domain.entities.chat import Chat
from chat_sync.domain.value_objects.enums import ChatType
from chat_sync.infrastructure.db.mappers import chat as mapper
from chat_sync.infrastructure.db.models.chat import ChatModel
from chat_sync.infrastructure.db.models.participant import ParticipantModel
from chat_sync.infrastructure.db.repositories._cursor import decode_cursor


class ChatReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, chat_id: UUID) -> Chat | None:
        result = await self._session.get(ChatModel, chat_id)
        return mapper.model_to_entity(result) if result else None

    async def find_individual(self, user_a: int, user_b: int) -> Chat | None:
        pa = aliased(ParticipantModel)
        pb = aliased(ParticipantModel)
        member_count = (
            select(func.count(ParticipantModel.id))
            .where(ParticipantModel.chat_id == ChatModel.id)
            .scalar_subquery()
        )
        stmt = (
            select(ChatModel)
            .join(pa, pa.chat_id == ChatModel.id)
            .join(pb, pb.chat_id == ChatModel.id)
            .where(
                ChatModel.type == ChatType.INDIVIDUAL,
                pa.user_id == user_a,
                pb.user_id == user_b,
                member_count == 2,
            )
            .order_by(ChatModel.created_at.asc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def list_for_user(
        self,
        user_id: int,
        *,
        cursor: str | None = None,
        limit: int = 20,
    ) -> list[Chat]:
        activity = func.coalesce(ChatModel.last_message_at, ChatModel.created_at)
        stmt = (
            select(ChatModel)
            .join(
                ParticipantModel,
                ParticipantModel.chat_id == ChatModel.id,
            )
            .where(ParticipantModel.user_id == user_id)
            .order_by(activity.desc(), ChatModel.id)
            .limit(limit)
        )
        if cursor:
            ts, cid = decode_cursor(cursor)
            stmt = stmt.where(
                (activity < ts) | ((activity == ts) & (ChatModel.id > cid))
            )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]


class ChatWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, chat: Chat) -> Chat:
        self._session.add(mapper.entity_to_model(chat))
        await self._session.flush()
        return chat

    async def lock_individual_pair(self, user_a: int, user_b: int) -> None:
        low, high = sorted((user_a, user_b))
        key = func.hashtextextended(f"individual-chat:{low}:{high}", 0)
        await self._session.execute(select(func.pg_advisory_xact_lock(key)))

    async def touch_last_message(
        self,
        chat_id: UUID,
        message_id: UUID,
        ts: datetime,
    ) -> None:
        stmt = (
            update(ChatModel)
            .where(ChatModel.id == chat_id)
            .values(last_message_id=message_id, last_message_at=ts)
        )
        await self._session.execute(stmt)

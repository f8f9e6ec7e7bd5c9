from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from chat_sync.domain.entities.read_state import ReadState
from chat_sync.infrastructure.db.models.read_state import ReadStateModel


def _to_entity(model: ReadStateModel) -> ReadState:
    return ReadState(
        chat_id=model.chat_id,
        user_id=model.user_id,
        unread_count=model.unread_count,
        last_read_at=model.last_read_at,
    )


class ReadStateReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, chat_id: UUID, user_id: int) -> ReadState | None:
        stmt = select(ReadStateModel).where(
            ReadStateModel.chat_id == chat_id,
            ReadStateModel.user_id == user_id,
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return _to_entity(model) if model else None

    async def list_for_chat(self, chat_id: UUID) -> list[ReadState]:
        stmt = select(ReadStateModel).where(ReadStateModel.chat_id == chat_id)
        result = await self._session.execute(stmt)
        return [_to_entity(m) for m in result.scalars().all()]

    async def unread_counts(self, user_id: int, chat_ids: list[UUID]) -> dict[UUID, int]:
        stmt = select(ReadStateModel.chat_id, ReadStateModel.unread_count).where(
            ReadStateModel.user_id == user_id,
            ReadStateModel.chat_id.in_(chat_ids),
        )
        result = await self._session.execute(stmt)
        return {chat_id: count for chat_id, count in result.all()}


class ReadStateWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def lock(self, chat_id: UUID, user_ids: list[int]) -> None:
        insert = pg_insert(ReadStateModel).values(
            [{"chat_id": chat_id, "user_id": uid, "unread_count": 0} for uid in sorted(user_ids)]
        )
        stmt = insert.on_conflict_do_update(
            constraint="uq_read_state_member",
            set_={"unread_count": ReadStateModel.unread_count},
        )
        await self._session.execute(stmt)

    async def increment_unread(self, chat_id: UUID, user_ids: list[int]) -> None:
        insert = pg_insert(ReadStateModel).values(
            [{"chat_id": chat_id, "user_id": uid, "unread_count": 1} for uid in user_ids]
        )
        stmt = insert.on_conflict_do_update(
            constraint="uq_read_state_member",
            set_={"unread_count": ReadStateModel.unread_count + 1},
        )
        await self._session.execute(stmt)

    async def reset(self, chat_id: UUID, user_id: int, read_at: datetime) -> ReadState:
        stmt = (
            pg_insert(ReadStateModel)
            .values(chat_id=chat_id, user_id=user_id, unread_count=0, last_read_at=read_at)
            .on_conflict_do_update(
                constraint="uq_read_state_member",
                set_={"unread_count": 0, "last_read_at": read_at},
            )
            .returning(ReadStateModel)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return _to_entity(result.scalar_one())

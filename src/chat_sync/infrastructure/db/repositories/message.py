from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from chat_sync.domain.entities.message import Message, Reaction
from chat_sync.infrastructure.db.mappers import message as mapper
from chat_sync.infrastructure.db.models.message import MessageModel
from chat_sync.infrastructure.db.models.reaction import ReactionModel
from chat_sync.infrastructure.db.repositories._cursor import decode_cursor


class MessageReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, message_id: UUID) -> Message | None:
        model = await self._session.get(MessageModel, message_id, populate_existing=True)
        return mapper.model_to_entity(model) if model else None

    async def list_messages(
        self,
        chat_id: UUID,
        *,
        cursor: str | None = None,
        limit: int = 50,
    ) -> list[Message]:
        stmt = (
            select(MessageModel)
            .where(MessageModel.chat_id == chat_id)
            .order_by(MessageModel.created_at.desc(), MessageModel.id.desc())
            .limit(limit)
        )
        if cursor:
            ts, mid = decode_cursor(cursor)
            stmt = stmt.where(
                (MessageModel.created_at < ts)
                | ((MessageModel.created_at == ts) & (MessageModel.id < mid))
            )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def list_reactions(self, message_ids: list[UUID]) -> dict[UUID, list[Reaction]]:
        if not message_ids:
            return {}
        stmt = (
            select(ReactionModel)
            .where(ReactionModel.message_id.in_(message_ids))
            .order_by(ReactionModel.created_at.asc(), ReactionModel.id.asc())
        )
        result = await self._session.execute(stmt)
        grouped: dict[UUID, list[Reaction]] = defaultdict(list)
        for row in result.scalars().all():
            grouped[row.message_id].append(mapper.reaction_to_entity(row))
        return dict(grouped)


class MessageWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create_if_not_exists(self, message: Message) -> tuple[Message, bool]:
        """Insert message idempotently. Returns (message, created_flag)."""
        stmt = (
            pg_insert(MessageModel)
            .values(**mapper.entity_to_values(message))
            .on_conflict_do_nothing(constraint="uq_message_idempotency")
            .returning(MessageModel)
        )
        result = await self._session.execute(stmt)
        row = result.scalar_one_or_none()

        if row is not None:
            return mapper.model_to_entity(row), True

        # already sent under this key
        existing = await self.get_by_client_msg_id(
            message.chat_id,
            message.sender_id,
            message.client_msg_id,
        )
        assert existing is not None
        return existing, False

    async def get_by_client_msg_id(
        self,
        chat_id: UUID,
        sender_id: int,
        client_msg_id: UUID,
    ) -> Message | None:
        stmt = select(MessageModel).where(
            MessageModel.chat_id == chat_id,
            MessageModel.sender_id == sender_id,
            MessageModel.client_msg_id == client_msg_id,
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def edit_content(
        self,
        message_id: UUID,
        content: str,
        edited_at: datetime,
    ) -> Message | None:
        # the is_deleted guard makes delete win regardless of arrival order
        stmt = (
            update(MessageModel)
            .where(MessageModel.id == message_id, MessageModel.is_deleted.is_(False))
            .values(content=content, is_edited=True, edited_at=edited_at)
            .returning(MessageModel)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def soft_delete(
        self,
        message_id: UUID,
        deleted_by: int,
        deleted_at: datetime,
    ) -> Message | None:
        stmt = (
            update(MessageModel)
            .where(MessageModel.id == message_id, MessageModel.is_deleted.is_(False))
            .values(is_deleted=True, deleted_at=deleted_at, deleted_by=deleted_by)
            .returning(MessageModel)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def lock(self, message_id: UUID) -> Message | None:
        stmt = (
            select(MessageModel)
            .where(MessageModel.id == message_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def upsert_reaction(
        self,
        message_id: UUID,
        user_id: int,
        emoji: str,
        created_at: datetime,
    ) -> None:
        stmt = (
            pg_insert(ReactionModel)
            .values(message_id=message_id, user_id=user_id, emoji=emoji, created_at=created_at)
            .on_conflict_do_update(
                constraint="uq_reaction_per_user",
                set_={"emoji": emoji, "created_at": created_at},
            )
        )
        await self._session.execute(stmt)

    async def remove_reaction(self, message_id: UUID, user_id: int) -> bool:
        stmt = delete(ReactionModel).where(
            ReactionModel.message_id == message_id,
            ReactionModel.user_id == user_id,
        )
        result = await self._session.execute(stmt)
        return (result.rowcount or 0) > 0

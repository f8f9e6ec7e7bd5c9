from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from chat_sync.application.dto.chat import ChatSummaryDTO, CreateChatDTO
from chat_sync.application.dto.principal import Principal
from chat_sync.application.exceptions import ValidationError
from chat_sync.application.policies.permissions import assert_chat_access
from chat_sync.application.uow import UnitOfWork
from chat_sync.domain.entities.chat import Chat
from chat_sync.domain.entities.participant import Participant
from chat_sync.domain.value_objects.enums import ChatType, ParticipantRole
from chat_sync.services import events, read_state_service

logger = logging.getLogger(__name__)


async def create_chat(
    dto: CreateChatDTO,
    principal: Principal,
    uow: UnitOfWork,
) -> tuple[Chat, bool]:
    """Create a chat, or return the existing one-to-one chat between two users.

    Returns (chat, created). The creator is always a participant; in a group
    the creator is the admin. New chats emit ``chat-update`` to the initial
    participants.
    """
    others = [uid for uid in dict.fromkeys(dto.participant_ids) if uid != principal.user_id]

    if dto.type == ChatType.INDIVIDUAL:
        if len(others) != 1:
            raise ValidationError("An individual chat needs exactly one other participant")
        await uow.chats_w.lock_individual_pair(principal.user_id, others[0])
        existing = await uow.chats.find_individual(principal.user_id, others[0])
        if existing is not None:
            return existing, False
    elif not others:
        raise ValidationError("A group chat needs at least one other participant")

    now = datetime.now(timezone.utc)
    chat_id = uuid.uuid4()
    creator_role = ParticipantRole.ADMIN if dto.type == ChatType.GROUP else ParticipantRole.MEMBER
    participants = [
        Participant(chat_id=chat_id, user_id=principal.user_id, role=creator_role, joined_at=now),
        *(
            Participant(chat_id=chat_id, user_id=uid, role=ParticipantRole.MEMBER, joined_at=now)
            for uid in others
        ),
    ]
    chat = Chat(
        id=chat_id,
        type=dto.type.value,
        name=dto.name,
        last_message_id=None,
        last_message_at=None,
        created_at=now,
        updated_at=now,
        participants=participants,
    )
    chat = await uow.chats_w.create(chat)
    for participant in participants:
        await uow.participants_w.add(participant)

    await uow.outbox.add(events.chat_created(chat, principal.user_id))
    await uow.commit()
    logger.info("Chat %s created by user %s", chat.id, principal.user_id)
    return chat, True


async def list_user_chats(
    principal: Principal,
    cursor: str | None,
    limit: int,
    uow: UnitOfWork,
) -> list[ChatSummaryDTO]:
    chats = await uow.chats.list_for_user(principal.user_id, cursor=cursor, limit=limit)
    counts = await read_state_service.unread_counts(
        principal.user_id, [c.id for c in chats], uow,
    )
    return [ChatSummaryDTO(chat=c, unread_count=counts.get(c.id, 0)) for c in chats]


async def get_chat(
    chat_id: uuid.UUID,
    principal: Principal,
    uow: UnitOfWork,
) -> Chat:
    chat = await uow.chats.get_by_id(chat_id)
    return await assert_chat_access(principal, chat, uow.participants)

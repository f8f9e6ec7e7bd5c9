from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from chat_sync.application.dto.message import SendMessageDTO
from chat_sync.application.dto.principal import Principal
from chat_sync.application.exceptions import (
    MessageDeletedConflict,
    NotFoundError,
    ValidationError,
)
from chat_sync.application.policies.permissions import (
    assert_can_delete,
    assert_can_edit,
    assert_chat_access,
)
from chat_sync.application.uow import UnitOfWork
from chat_sync.config import settings
from chat_sync.domain.entities.message import Message, Reaction
from chat_sync.domain.events.delivery import EventKind
from chat_sync.services import events, read_state_service

logger = logging.getLogger(__name__)


def _clean_content(content: str | None) -> str:
    text = (content or "").strip()
    if not text or len(text) > settings.MESSAGE_MAX_LENGTH:
        raise ValidationError(
            f"Message content must be between 1 and {settings.MESSAGE_MAX_LENGTH} characters"
        )
    return text


async def send_message(
    dto: SendMessageDTO,
    principal: Principal,
    uow: UnitOfWork,
) -> tuple[Message, bool]:
    """Create a message idempotently.

    Returns (message, created). If a message with the same client_msg_id
    already exists the existing one is returned with created=False, and
    neither the unread ledger nor the outbox is touched again.
    """
    content = _clean_content(dto.content)
    chat = await uow.chats.get_by_id(dto.chat_id)
    await assert_chat_access(principal, chat, uow.participants)

    if dto.reply_to_id is not None:
        replied = await uow.messages.get_by_id(dto.reply_to_id)
        if replied is None or replied.chat_id != dto.chat_id:
            raise ValidationError("Invalid reply message")

    existing = await uow.messages_w.get_by_client_msg_id(
        dto.chat_id, principal.user_id, dto.client_msg_id,
    )
    if existing is not None:
        return existing, False

    # recipients' ledger rows are locked before created_at is taken
    participants = await uow.participants.list_participants(dto.chat_id)
    await read_state_service.on_message_persisted(
        dto.chat_id,
        principal.user_id,
        [p.user_id for p in participants],
        uow,
    )

    now = datetime.now(timezone.utc)
    msg = Message(
        id=uuid.uuid4(),
        chat_id=dto.chat_id,
        sender_id=principal.user_id,
        type=dto.type.value,
        content=content,
        client_msg_id=dto.client_msg_id,
        created_at=now,
        media_url=dto.media_url,
        reply_to_id=dto.reply_to_id,
    )

    msg, created = await uow.messages_w.create_if_not_exists(msg)
    if not created:
        # a concurrent send under the same key won
        await uow.rollback()
        return msg, False

    await uow.chats_w.touch_last_message(dto.chat_id, msg.id, msg.created_at)
    await uow.outbox.add(events.new_message(msg))
    await uow.commit()
    logger.debug("Message %s persisted in chat %s", msg.id, dto.chat_id)
    return msg, True


async def edit_message(
    message_id: uuid.UUID,
    content: str,
    principal: Principal,
    uow: UnitOfWork,
) -> Message:
    """Replace a message's content. Deleted messages reject the edit."""
    content = _clean_content(content)
    msg = await uow.messages.get_by_id(message_id)
    if msg is None:
        raise NotFoundError("Message not found")
    assert_can_edit(principal, msg)
    if msg.is_deleted:
        raise MessageDeletedConflict()

    updated = await uow.messages_w.edit_content(
        message_id, content, datetime.now(timezone.utc),
    )
    if updated is None:
        # a delete committed between our read and the conditional update
        raise MessageDeletedConflict()

    reactions = await uow.messages.list_reactions([message_id])
    updated = updated.with_reactions(reactions.get(message_id, []))
    await uow.outbox.add(events.message_updated(updated, principal.user_id))
    await uow.commit()
    return updated


async def delete_message(
    message_id: uuid.UUID,
    principal: Principal,
    uow: UnitOfWork,
) -> Message:
    """Soft-delete a message. Deleting a tombstone is a no-op without a new event."""
    msg = await uow.messages.get_by_id(message_id)
    if msg is None:
        raise NotFoundError("Message not found")
    chat = await uow.chats.get_by_id(msg.chat_id)
    if chat is None:
        raise NotFoundError("Chat not found")
    assert_can_delete(principal, msg, chat)
    if msg.is_deleted:
        return msg

    deleted = await uow.messages_w.soft_delete(
        message_id, principal.user_id, datetime.now(timezone.utc),
    )
    if deleted is None:
        return await uow.messages.get_by_id(message_id)  # type: ignore[return-value]

    await uow.outbox.add(events.message_deleted(deleted, principal.user_id))
    await uow.commit()
    return deleted


async def _locked_live_message(
    message_id: uuid.UUID,
    principal: Principal,
    uow: UnitOfWork,
) -> Message:
    msg = await uow.messages_w.lock(message_id)
    if msg is None:
        raise NotFoundError("Message not found")
    chat = await uow.chats.get_by_id(msg.chat_id)
    await assert_chat_access(principal, chat, uow.participants)
    if msg.is_deleted:
        raise MessageDeletedConflict()
    return msg


async def add_reaction(
    message_id: uuid.UUID,
    emoji: str,
    principal: Principal,
    uow: UnitOfWork,
) -> list[Reaction]:
    """Set the caller's reaction (one per user) and broadcast the full snapshot."""
    if not emoji or not emoji.strip():
        raise ValidationError("Emoji is required")
    msg = await _locked_live_message(message_id, principal, uow)

    now = datetime.now(timezone.utc)
    await uow.messages_w.upsert_reaction(message_id, principal.user_id, emoji.strip(), now)
    snapshot = (await uow.messages.list_reactions([message_id])).get(message_id, [])
    await uow.outbox.add(
        events.reactions_changed(
            EventKind.REACTION_ADDED, msg, snapshot, principal.user_id, now,
        )
    )
    await uow.commit()
    return snapshot


async def remove_reaction(
    message_id: uuid.UUID,
    principal: Principal,
    uow: UnitOfWork,
) -> list[Reaction]:
    msg = await _locked_live_message(message_id, principal, uow)

    removed = await uow.messages_w.remove_reaction(message_id, principal.user_id)
    snapshot = (await uow.messages.list_reactions([message_id])).get(message_id, [])
    if removed:
        await uow.outbox.add(
            events.reactions_changed(
                EventKind.REACTION_REMOVED,
                msg,
                snapshot,
                principal.user_id,
                datetime.now(timezone.utc),
            )
        )
        await uow.commit()
    return snapshot


async def list_messages(
    chat_id: uuid.UUID,
    principal: Principal,
    cursor: str | None,
    limit: int,
    uow: UnitOfWork,
) -> list[Message]:
    """Fetch a page of history (oldest first) and mark the chat read."""
    chat = await uow.chats.get_by_id(chat_id)
    await assert_chat_access(principal, chat, uow.participants)

    page = await uow.messages.list_messages(chat_id, cursor=cursor, limit=limit)
    page.reverse()

    await read_state_service.on_chat_read(chat_id, principal, uow, commit=False)
    reactions = await uow.messages.list_reactions([m.id for m in page])
    states = await uow.read_state.list_for_chat(chat_id)
    await uow.commit()

    page = [m.with_reactions(reactions.get(m.id, [])) for m in page]
    return read_state_service.attach_read_receipts(page, states)

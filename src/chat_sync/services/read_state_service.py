"""Unread / read-receipt ledger.

Counters are only ever changed by single atomic statements in the
repository layer: an upsert-increment when a message is persisted and an
upsert-reset when the user reads the chat. Nothing here reads a counter
and writes it back.

Both paths hold the reader's ledger row lock before taking their
timestamp, so a message's created_at and a read marker never cross: the
marker is at or after created_at exactly when the reset saw the increment.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from chat_sync.application.dto.principal import Principal
from chat_sync.application.policies.permissions import assert_chat_access
from chat_sync.application.uow import UnitOfWork
from chat_sync.domain.entities.message import Message, ReadReceipt
from chat_sync.domain.entities.read_state import ReadState
from chat_sync.services import events

logger = logging.getLogger(__name__)


async def on_message_persisted(
    chat_id: uuid.UUID,
    sender_id: int,
    recipient_ids: list[int],
    uow: UnitOfWork,
) -> None:
    """Bump every recipient's counter by one. Runs inside the caller's transaction."""
    recipients = sorted({uid for uid in recipient_ids if uid != sender_id})
    if not recipients:
        return
    await uow.read_state_w.increment_unread(chat_id, recipients)


async def on_chat_read(
    chat_id: uuid.UUID,
    principal: Principal,
    uow: UnitOfWork,
    *,
    commit: bool = True,
) -> ReadState:
    """Reset the caller's counter, stamp the read marker and emit ``messages-read``.

    Reading an already-read chat moves the marker forward and re-emits the
    event; the counter stays at zero.
    """
    chat = await uow.chats.get_by_id(chat_id)
    await assert_chat_access(principal, chat, uow.participants)

    await uow.read_state_w.lock(chat_id, [principal.user_id])
    now = datetime.now(timezone.utc)
    state = await uow.read_state_w.reset(chat_id, principal.user_id, now)
    await uow.outbox.add(events.messages_read(chat_id, principal.user_id, now))
    if commit:
        await uow.commit()
    logger.debug("Chat %s read by user %s", chat_id, principal.user_id)
    return state


async def unread_counts(
    user_id: int,
    chat_ids: list[uuid.UUID],
    uow: UnitOfWork,
) -> dict[uuid.UUID, int]:
    if not chat_ids:
        return {}
    counts = await uow.read_state.unread_counts(user_id, chat_ids)
    return {cid: max(counts.get(cid, 0), 0) for cid in chat_ids}


def attach_read_receipts(
    messages: list[Message],
    states: list[ReadState],
) -> list[Message]:
    """Derive each message's readBy from the chat's read markers.

    A user has read a message when their marker is at or after its
    creation time. Senders never appear in their own message's readBy.
    """
    markers = [s for s in states if s.last_read_at is not None]
    result = []
    for msg in messages:
        receipts = [
            ReadReceipt(user_id=s.user_id, read_at=s.last_read_at)  # type: ignore[arg-type]
            for s in markers
            if s.user_id != msg.sender_id and s.last_read_at >= msg.created_at  # type: ignore[operator]
        ]
        result.append(msg.with_read_by(receipts))
    return result

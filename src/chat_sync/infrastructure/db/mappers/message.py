from __future__ import annotations

from chat_sync.domain.entities.message import Message, Reaction
from chat_sync.infrastructure.db.models.message import MessageModel
from chat_sync.infrastructure.db.models.reaction import ReactionModel


def model_to_entity(model: MessageModel) -> Message:
    return Message(
        id=model.id,
        chat_id=model.chat_id,
        sender_id=model.sender_id,
        type=model.type,
        content=model.content,
        client_msg_id=model.client_msg_id,
        created_at=model.created_at,
        media_url=model.media_url,
        reply_to_id=model.reply_to_id,
        is_edited=model.is_edited,
        edited_at=model.edited_at,
        is_deleted=model.is_deleted,
        deleted_at=model.deleted_at,
        deleted_by=model.deleted_by,
    )


def entity_to_values(entity: Message) -> dict:
    return {
        "id": entity.id,
        "chat_id": entity.chat_id,
        "sender_id": entity.sender_id,
        "type": entity.type,
        "content": entity.content,
        "media_url": entity.media_url,
        "reply_to_id": entity.reply_to_id,
        "client_msg_id": entity.client_msg_id,
        "created_at": entity.created_at,
    }


def reaction_to_entity(model: ReactionModel) -> Reaction:
    return Reaction(user_id=model.user_id, emoji=model.emoji, created_at=model.created_at)

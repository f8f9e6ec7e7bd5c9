from __future__ import annotations

from chat_sync.domain.entities.chat import Chat
from chat_sync.infrastructure.db.mappers import participant as participant_mapper
from chat_sync.infrastructure.db.models.chat import ChatModel


def model_to_entity(model: ChatModel) -> Chat:
    return Chat(
        id=model.id,
        type=model.type,
        name=model.name,
        last_message_id=model.last_message_id,
        last_message_at=model.last_message_at,
        created_at=model.created_at,
        updated_at=model.updated_at,
        participants=[participant_mapper.model_to_entity(p) for p in model.participants],
    )


def entity_to_model(entity: Chat) -> ChatModel:
    # participants are inserted separately through the participant writer
    return ChatModel(
        id=entity.id,
        type=entity.type,
        name=entity.name,
        last_message_id=entity.last_message_id,
        last_message_at=entity.last_message_at,
        created_at=entity.created_at,
        updated_at=entity.updated_at,
    )

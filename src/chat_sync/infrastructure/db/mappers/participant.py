from __future__ import annotations

from chat_sync.domain.entities.participant import Participant
from chat_sync.infrastructure.db.models.participant import ParticipantModel


def model_to_entity(model: ParticipantModel) -> Participant:
    return Participant(
        chat_id=model.chat_id,
        user_id=model.user_id,
        role=model.role,
        joined_at=model.joined_at,
    )


def entity_to_model(entity: Participant) -> ParticipantModel:
    return ParticipantModel(
        chat_id=entity.chat_id,
        user_id=entity.user_id,
        role=entity.role,
        joined_at=entity.joined_at,
    )

"""Import all models so Base.metadata knows every table."""
from chat_sync.infrastructure.db.models.chat import ChatModel
from chat_sync.infrastructure.db.models.message import MessageModel
from chat_sync.infrastructure.db.models.outbox import OutboxMessageModel
from chat_sync.infrastructure.db.models.participant import ParticipantModel
from chat_sync.infrastructure.db.models.reaction import ReactionModel
from chat_sync.infrastructure.db.models.read_state import ReadStateModel

__all__ = [
    "ChatModel",
    "MessageModel",
    "OutboxMessageModel",
    "ParticipantModel",
    "ReactionModel",
    "ReadStateModel",
]

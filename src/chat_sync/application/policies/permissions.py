from __future__ import annotations

from chat_sync.application.dto.principal import Principal
from chat_sync.application.exceptions import ForbiddenError, NotFoundError
from chat_sync.application.repositories.participant import ParticipantReader
from chat_sync.domain.entities.chat import Chat
from chat_sync.domain.entities.message import Message


async def assert_chat_access(
    principal: Principal,
    chat: Chat | None,
    participants: ParticipantReader,
) -> Chat:
    """Raise if chat doesn't exist or principal is not a participant."""
    if chat is None:
        raise NotFoundError("Chat not found")

    is_member = await participants.is_participant(chat.id, principal.user_id)
    if not is_member:
        raise ForbiddenError("Not a participant of this chat")

    return chat


def assert_can_edit(principal: Principal, message: Message) -> None:
    if message.sender_id != principal.user_id:
        raise ForbiddenError("You can only edit your own messages")


def assert_can_delete(principal: Principal, message: Message, chat: Chat) -> None:
    # group admins may delete anyone's message
    if message.sender_id != principal.user_id and not chat.is_admin(principal.user_id):
        raise ForbiddenError("You can only delete your own messages")

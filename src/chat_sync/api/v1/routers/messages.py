from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Query, Response, status

from chat_sync.api.deps import CurrentPrincipal, UoWDep
from chat_sync.api.v1.schemas.common import PaginatedResponse
from chat_sync.api.v1.schemas.message import (
    EditMessageRequest,
    MessageResponse,
    ReactionRequest,
    ReactionResponse,
    SendMessageRequest,
)
from chat_sync.application.dto.message import SendMessageDTO
from chat_sync.config import settings
from chat_sync.infrastructure.db.repositories._cursor import encode_cursor
from chat_sync.services import message_service

router = APIRouter(prefix="/api/v1", tags=["messages"])


@router.get("/chats/{chat_id}/messages", response_model=PaginatedResponse[MessageResponse])
async def list_messages(
    chat_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
    cursor: str | None = Query(None),
    limit: int = Query(50, ge=1, le=settings.HISTORY_PAGE_MAX),
) -> PaginatedResponse[MessageResponse]:
    messages = await message_service.list_messages(chat_id, principal, cursor, limit, uow)
    # pages run backwards in time; the oldest row of this page continues it
    next_cursor = None
    if len(messages) == limit:
        next_cursor = encode_cursor(messages[0].created_at, messages[0].id)
    return PaginatedResponse[MessageResponse](
        items=[MessageResponse.from_entity(m) for m in messages],
        next_cursor=next_cursor,
    )


@router.post(
    "/chats/{chat_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def send_message(
    chat_id: UUID,
    body: SendMessageRequest,
    principal: CurrentPrincipal,
    uow: UoWDep,
    response: Response,
) -> MessageResponse:
    msg, created = await message_service.send_message(
        SendMessageDTO(
            chat_id=chat_id,
            client_msg_id=body.client_msg_id,
            content=body.content,
            type=body.type,
            media_url=body.media_url,
            reply_to_id=body.reply_to_id,
        ),
        principal,
        uow,
    )
    if not created:
        response.status_code = status.HTTP_200_OK
    return MessageResponse.from_entity(msg)


@router.patch("/messages/{message_id}", response_model=MessageResponse)
async def edit_message(
    message_id: UUID,
    body: EditMessageRequest,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> MessageResponse:
    msg = await message_service.edit_message(message_id, body.content, principal, uow)
    return MessageResponse.from_entity(msg)


@router.delete("/messages/{message_id}", response_model=MessageResponse)
async def delete_message(
    message_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> MessageResponse:
    msg = await message_service.delete_message(message_id, principal, uow)
    return MessageResponse.from_entity(msg)


@router.put("/messages/{message_id}/reactions", response_model=list[ReactionResponse])
async def add_reaction(
    message_id: UUID,
    body: ReactionRequest,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> list[ReactionResponse]:
    reactions = await message_service.add_reaction(message_id, body.emoji, principal, uow)
    return [ReactionResponse.model_validate(r, from_attributes=True) for r in reactions]


@router.delete("/messages/{message_id}/reactions", response_model=list[ReactionResponse])
async def remove_reaction(
    message_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> list[ReactionResponse]:
    reactions = await message_service.remove_reaction(message_id, principal, uow)
    return [ReactionResponse.model_validate(r, from_attributes=True) for r in reactions]

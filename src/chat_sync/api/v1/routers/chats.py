from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Query, Response, status

from chat_sync.api.deps import CurrentPrincipal, UoWDep
from chat_sync.api.v1.schemas.chat import ChatResponse, CreateChatRequest, ReadStateResponse
from chat_sync.api.v1.schemas.common import PaginatedResponse
from chat_sync.application.dto.chat import CreateChatDTO
from chat_sync.infrastructure.db.repositories._cursor import encode_cursor
from chat_sync.services import chat_service, read_state_service

router = APIRouter(prefix="/api/v1/chats", tags=["chats"])


@router.post("", response_model=ChatResponse, status_code=status.HTTP_201_CREATED)
async def create_chat(
    body: CreateChatRequest,
    principal: CurrentPrincipal,
    uow: UoWDep,
    response: Response,
) -> ChatResponse:
    chat, created = await chat_service.create_chat(
        CreateChatDTO(type=body.type, participant_ids=body.participant_ids, name=body.name),
        principal,
        uow,
    )
    if not created:
        response.status_code = status.HTTP_200_OK
    return ChatResponse.from_entity(chat)


@router.get("", response_model=PaginatedResponse[ChatResponse])
async def list_chats(
    principal: CurrentPrincipal,
    uow: UoWDep,
    cursor: str | None = Query(None),
    limit: int = Query(20, ge=1, le=100),
) -> PaginatedResponse[ChatResponse]:
    summaries = await chat_service.list_user_chats(principal, cursor, limit, uow)
    next_cursor = None
    if len(summaries) == limit:
        last = summaries[-1].chat
        next_cursor = encode_cursor(last.last_message_at or last.created_at, last.id)
    return PaginatedResponse[ChatResponse](
        items=[ChatResponse.from_summary(s) for s in summaries],
        next_cursor=next_cursor,
    )


@router.get("/{chat_id}", response_model=ChatResponse)
async def get_chat(
    chat_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> ChatResponse:
    chat = await chat_service.get_chat(chat_id, principal, uow)
    counts = await read_state_service.unread_counts(principal.user_id, [chat.id], uow)
    return ChatResponse.from_entity(chat, counts.get(chat.id, 0))


@router.post("/{chat_id}/read", response_model=ReadStateResponse)
async def mark_read(
    chat_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> ReadStateResponse:
    state = await read_state_service.on_chat_read(chat_id, principal, uow)
    return ReadStateResponse.model_validate(state, from_attributes=True)

"""FastAPI dependency injection helpers."""
from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from typing import Annotated, AsyncIterator, Callable

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.requests import HTTPConnection

from chat_sync.application.dto.principal import Principal
from chat_sync.application.exceptions import AuthFailure
from chat_sync.application.ports.auth import TokenVerifier
from chat_sync.application.ports.bus import EventPublisher
from chat_sync.application.ports.presence import PresenceTracker
from chat_sync.application.uow import UnitOfWork
from chat_sync.config import settings
from chat_sync.infrastructure.auth.hs256_verifier import HS256Verifier
from chat_sync.infrastructure.auth.jwks_verifier import JWKSVerifier
from chat_sync.infrastructure.db.uow import open_uow
from chat_sync.infrastructure.ws.manager import ConnectionManager

_bearer_scheme = HTTPBearer()

UoWFactory = Callable[[], AbstractAsyncContextManager[UnitOfWork]]


def get_uow_factory() -> UoWFactory:
    """Socket handlers open one unit of work per inbound frame."""
    return open_uow


async def get_uow(
    factory: Annotated[UoWFactory, Depends(get_uow_factory)],
) -> AsyncIterator[UnitOfWork]:
    async with factory() as uow:
        yield uow


UoWDep = Annotated[UnitOfWork, Depends(get_uow)]
UoWFactoryDep = Annotated[UoWFactory, Depends(get_uow_factory)]


def _get_verifier() -> TokenVerifier:
    if settings.JWT_VERIFY_MODE == "jwks":
        assert settings.JWKS_URL, "JWKS_URL must be set when JWT_VERIFY_MODE=jwks"
        return JWKSVerifier(settings.JWKS_URL)
    return HS256Verifier(settings.JWT_SECRET, settings.JWT_ALGORITHM)


_verifier: TokenVerifier | None = None


def get_verifier() -> TokenVerifier:
    global _verifier  # noqa: PLW0603
    if _verifier is None:
        _verifier = _get_verifier()
    return _verifier


async def get_current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(_bearer_scheme)],
) -> Principal:
    verifier = get_verifier()
    try:
        return await verifier.verify(credentials.credentials)
    except AuthFailure as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=exc.detail,
        ) from exc


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]


def get_manager(conn: HTTPConnection) -> ConnectionManager:
    return conn.app.state.manager


def get_publisher(conn: HTTPConnection) -> EventPublisher:
    return conn.app.state.publisher


def get_presence(conn: HTTPConnection) -> PresenceTracker:
    return conn.app.state.presence


ManagerDep = Annotated[ConnectionManager, Depends(get_manager)]
PublisherDep = Annotated[EventPublisher, Depends(get_publisher)]
PresenceDep = Annotated[PresenceTracker, Depends(get_presence)]

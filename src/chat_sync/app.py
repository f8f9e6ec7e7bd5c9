from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import redis.asyncio as aioredis
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chat_sync.api.deps import get_verifier
from chat_sync.api.middleware.correlation_id import CorrelationIdMiddleware
from chat_sync.api.middleware.metrics import RequestTimingMiddleware
from chat_sync.api.v1.routers import chats, health, messages, ws
from chat_sync.application.exceptions import (
    AuthFailure,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    Unauthenticated,
    ValidationError,
)
from chat_sync.config import settings
from chat_sync.infrastructure.bus.local import InProcessPublisher
from chat_sync.infrastructure.bus.local_presence import LocalPresence
from chat_sync.infrastructure.bus.redis_presence import RedisPresence
from chat_sync.infrastructure.bus.redis_pubsub import (
    RedisPubSubPublisher,
    RedisPubSubSubscriber,
)
from chat_sync.infrastructure.ws.dispatcher import EventDispatcher
from chat_sync.infrastructure.ws.manager import ConnectionManager
from chat_sync.infrastructure.ws.registry import ConnectionRegistry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle.

    Without a lifespan (e.g. in tests) the app stays on the in-process
    publisher and delivers only to its own sockets.
    """
    app.state.redis = aioredis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
    )
    logger.info("Redis connection pool created")

    subscriber = RedisPubSubSubscriber(
        app.state.redis,
        settings.REDIS_PUBSUB_CHANNEL,
        app.state.dispatcher.dispatch,
    )
    await subscriber.start()
    app.state.pubsub_subscriber = subscriber
    app.state.publisher = RedisPubSubPublisher(app.state.redis, settings.REDIS_PUBSUB_CHANNEL)
    app.state.presence = RedisPresence(app.state.redis, settings.REDIS_PRESENCE_PREFIX)

    yield

    await subscriber.stop()
    await app.state.redis.aclose()
    logger.info("Redis connection pool closed")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Chat Sync",
        version="0.1.0",
        lifespan=lifespan,
    )

    manager = ConnectionManager(ConnectionRegistry(get_verifier()))
    app.state.manager = manager
    app.state.dispatcher = EventDispatcher(manager)
    app.state.publisher = InProcessPublisher(app.state.dispatcher)
    app.state.presence = LocalPresence()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestTimingMiddleware)
    app.add_middleware(CorrelationIdMiddleware)

    _register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(chats.router)
    app.include_router(messages.router)
    app.include_router(ws.router)

    return app


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(NotFoundError)
    async def _not_found(_req: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": exc.detail})

    @app.exception_handler(ForbiddenError)
    async def _forbidden(_req: Request, exc: ForbiddenError) -> JSONResponse:
        return JSONResponse(status_code=403, content={"detail": exc.detail})

    @app.exception_handler(ConflictError)
    async def _conflict(_req: Request, exc: ConflictError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": exc.detail})

    @app.exception_handler(ValidationError)
    async def _validation(_req: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": exc.detail})

    @app.exception_handler(AuthFailure)
    async def _auth_failure(_req: Request, exc: AuthFailure) -> JSONResponse:
        return JSONResponse(status_code=401, content={"detail": exc.detail})

    @app.exception_handler(Unauthenticated)
    async def _unauthenticated(_req: Request, exc: Unauthenticated) -> JSONResponse:
        return JSONResponse(status_code=401, content={"detail": exc.detail})

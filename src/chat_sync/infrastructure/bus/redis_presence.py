"""Cluster-wide presence counters kept in Redis."""
from __future__ import annotations

import logging

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)


class RedisPresence:
    """Implements application.ports.presence.PresenceTracker.

    One counter per user holds the number of nodes where that user has a
    session. A node that dies without reporting leaves its count behind
    until the key is deleted.
    """

    def __init__(self, redis: aioredis.Redis, prefix: str) -> None:
        self._redis = redis
        self._prefix = prefix

    def _key(self, user_id: int) -> str:
        return f"{self._prefix}:{user_id}"

    async def node_online(self, user_id: int) -> bool:
        return await self._redis.incr(self._key(user_id)) == 1

    async def node_offline(self, user_id: int) -> bool:
        remaining = await self._redis.decr(self._key(user_id))
        if remaining > 0:
            return False
        if remaining < 0:
            logger.warning("Presence counter for user %s went negative", user_id)
        await self._redis.delete(self._key(user_id))
        return True

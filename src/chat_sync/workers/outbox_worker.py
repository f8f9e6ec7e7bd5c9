"""Outbox worker: polls pending outbox records, publishes via Redis Pub/Sub."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone

import redis.asyncio as aioredis

from chat_sync.application.ports.bus import EventPublisher
from chat_sync.application.uow import UnitOfWork
from chat_sync.config import settings
from chat_sync.infrastructure.bus.redis_pubsub import RedisPubSubPublisher
from chat_sync.infrastructure.db.uow import open_uow
from chat_sync.log import setup_logging

logger = logging.getLogger(__name__)

BASE_DELAY_SECONDS = 5
MAX_DELAY_SECONDS = 300


def _calc_backoff(attempts: int) -> datetime:
    delay = min(BASE_DELAY_SECONDS * (2 ** attempts), MAX_DELAY_SECONDS)
    return datetime.now(timezone.utc) + timedelta(seconds=delay)


async def run_outbox_worker() -> None:
    redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    publisher = RedisPubSubPublisher(redis, settings.REDIS_PUBSUB_CHANNEL)

    logger.info(
        "Outbox worker started (poll=%.1fs, batch=%d, max_attempts=%d)",
        settings.OUTBOX_POLL_INTERVAL,
        settings.OUTBOX_BATCH_SIZE,
        settings.OUTBOX_MAX_ATTEMPTS,
    )

    try:
        while True:
            try:
                async with open_uow() as uow:
                    await process_batch(uow, publisher)
            except Exception:
                logger.exception("Outbox worker loop error")
            await asyncio.sleep(settings.OUTBOX_POLL_INTERVAL)
    finally:
        await redis.aclose()


async def process_batch(uow: UnitOfWork, publisher: EventPublisher) -> int:
    """Publish one batch in insertion order. Returns the number published.

    A record that keeps failing is retried with exponential backoff and
    parked as dead once it has used up ``OUTBOX_MAX_ATTEMPTS``.
    """
    batch = await uow.outbox.fetch_pending(settings.OUTBOX_BATCH_SIZE)
    if not batch:
        return 0

    sent_ids: list[int] = []
    for record in batch:
        try:
            await publisher.publish(record.event)
            sent_ids.append(record.id)
        except Exception:
            logger.exception("Failed to publish outbox record %d", record.id)
            if record.attempts + 1 >= settings.OUTBOX_MAX_ATTEMPTS:
                logger.error("Outbox record %d exceeded max attempts, parking it", record.id)
                await uow.outbox.mark_dead(record.id)
            else:
                await uow.outbox.mark_failed(record.id, _calc_backoff(record.attempts))

    if sent_ids:
        await uow.outbox.mark_sent(sent_ids)

    await uow.commit()
    if sent_ids:
        logger.info("Published %d outbox records", len(sent_ids))
    return len(sent_ids)


def main() -> None:
    setup_logging()
    asyncio.run(run_outbox_worker())


if __name__ == "__main__":
    main()

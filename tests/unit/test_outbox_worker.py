from __future__ import annotations

from datetime import datetime, timezone

import pytest

from chat_sync.config import settings
from chat_sync.services import events
from chat_sync.workers import outbox_worker
from tests.conftest import ALICE, FakePublisher, FakeUoW, make_chat, make_message


@pytest.mark.asyncio
async def test_publishes_pending_records_in_order(uow: FakeUoW):
    chat = make_chat()
    first = make_message(chat_id=chat.id, content="one")
    second = make_message(chat_id=chat.id, content="two")
    await uow.outbox.add(events.new_message(first))
    await uow.outbox.add(events.new_message(second))
    publisher = FakePublisher()

    published = await outbox_worker.process_batch(uow, publisher)

    assert published == 2
    assert [e.data["message"]["content"] for e in publisher.published] == ["one", "two"]
    assert set(uow.outbox.status.values()) == {"sent"}
    assert uow.commits == 1


@pytest.mark.asyncio
async def test_empty_outbox_does_not_commit(uow: FakeUoW):
    assert await outbox_worker.process_batch(uow, FakePublisher()) == 0
    assert uow.commits == 0


@pytest.mark.asyncio
async def test_failed_publish_is_retried_later(uow: FakeUoW):
    await uow.outbox.add(events.typing(make_chat().id, ALICE, True))

    published = await outbox_worker.process_batch(uow, FakePublisher(fail=True))

    assert published == 0
    assert uow.outbox.status[1] == "failed"
    assert uow.outbox.retry_at[1] > datetime.now(timezone.utc)
    assert uow.commits == 1


@pytest.mark.asyncio
async def test_record_is_parked_after_max_attempts(uow: FakeUoW, monkeypatch):
    monkeypatch.setattr(settings, "OUTBOX_MAX_ATTEMPTS", 2)
    await uow.outbox.add(events.typing(make_chat().id, ALICE, True))
    broken = FakePublisher(fail=True)

    await outbox_worker.process_batch(uow, broken)
    assert uow.outbox.status[1] == "failed"

    await outbox_worker.process_batch(uow, broken)
    assert uow.outbox.status[1] == "dead"

    publisher = FakePublisher()
    assert await outbox_worker.process_batch(uow, publisher) == 0
    assert publisher.published == []


def test_backoff_is_capped():
    now = datetime.now(timezone.utc)
    assert (outbox_worker._calc_backoff(0) - now).total_seconds() == pytest.approx(
        outbox_worker.BASE_DELAY_SECONDS, abs=1
    )
    assert (outbox_worker._calc_backoff(20) - now).total_seconds() == pytest.approx(
        outbox_worker.MAX_DELAY_SECONDS, abs=1
    )

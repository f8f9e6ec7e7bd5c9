from __future__ import annotations

import asyncio

import pytest

from chat_sync.client.typing_indicator import TypingEmitter, TypingTracker


class ManualClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


@pytest.mark.asyncio
async def test_keystrokes_send_start_once_then_stop_after_idle():
    sent: list[tuple[str, bool]] = []

    async def send(chat_id: str, is_typing: bool) -> None:
        sent.append((chat_id, is_typing))

    emitter = TypingEmitter(send, idle_seconds=0.05)
    for _ in range(3):
        await emitter.keystroke("c1")
        await asyncio.sleep(0.01)

    assert sent == [("c1", True)]
    assert emitter.is_active("c1")

    await asyncio.sleep(0.1)

    assert sent == [("c1", True), ("c1", False)]
    assert not emitter.is_active("c1")


@pytest.mark.asyncio
async def test_stop_sends_false_immediately():
    sent: list[tuple[str, bool]] = []

    async def send(chat_id: str, is_typing: bool) -> None:
        sent.append((chat_id, is_typing))

    emitter = TypingEmitter(send, idle_seconds=10)
    await emitter.keystroke("c1")
    await emitter.stop("c1")
    await emitter.stop("c1")

    assert sent == [("c1", True), ("c1", False)]
    await emitter.close()


def test_tracker_expires_without_stop():
    clock = ManualClock()
    tracker = TypingTracker(timeout_seconds=5, clock=clock)

    tracker.apply({"chat_id": "c1", "user_id": 2, "is_typing": True})
    clock.now += 4
    assert tracker.is_typing("c1", 2)

    clock.now += 1
    assert not tracker.is_typing("c1", 2)


def test_tracker_stop_and_clear():
    tracker = TypingTracker(clock=ManualClock())
    tracker.apply({"chat_id": "c1", "user_id": 2, "is_typing": True})
    tracker.apply({"chat_id": "c1", "user_id": 3, "is_typing": True})
    tracker.apply({"chat_id": "c2", "user_id": 3, "is_typing": True})

    tracker.apply({"chat_id": "c1", "user_id": 2, "is_typing": False})
    assert tracker.typing_users("c1") == [3]

    tracker.clear_chat("c1")
    assert tracker.typing_users("c1") == []
    assert tracker.typing_users("c2") == [3]

"""Typing indicator helpers for both ends of the wire."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

SendTyping = Callable[[str, bool], Awaitable[None]]


class TypingEmitter:
    """Turns keystrokes into ``typing`` frames.

    The first keystroke in a chat sends ``typing: true``; later keystrokes
    only push the idle deadline back. Once ``idle_seconds`` pass without
    input, ``typing: false`` is sent.
    """

    def __init__(self, send: SendTyping, idle_seconds: float = 2.0) -> None:
        self._send = send
        self._idle = idle_seconds
        self._active: set[str] = set()
        self._timers: dict[str, asyncio.Task[None]] = {}

    def is_active(self, chat_id: str) -> bool:
        return chat_id in self._active

    async def keystroke(self, chat_id: str) -> None:
        if chat_id not in self._active:
            self._active.add(chat_id)
            await self._send(chat_id, True)
        self._cancel_timer(chat_id)
        self._timers[chat_id] = asyncio.create_task(
            self._expire(chat_id), name=f"typing-idle-{chat_id}",
        )

    async def stop(self, chat_id: str) -> None:
        """Stop right away, e.g. when the message is sent."""
        self._cancel_timer(chat_id)
        if chat_id in self._active:
            self._active.discard(chat_id)
            await self._send(chat_id, False)

    async def close(self) -> None:
        for chat_id in list(self._timers):
            self._cancel_timer(chat_id)
        self._active.clear()

    def _cancel_timer(self, chat_id: str) -> None:
        task = self._timers.pop(chat_id, None)
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _expire(self, chat_id: str) -> None:
        await asyncio.sleep(self._idle)
        self._timers.pop(chat_id, None)
        if chat_id in self._active:
            self._active.discard(chat_id)
            try:
                await self._send(chat_id, False)
            except Exception:
                logger.warning("Could not send typing stop for chat %s", chat_id, exc_info=True)


class TypingTracker:
    """Receiver side: who is typing where, with local expiry.

    A ``typing: true`` that is not followed by ``false`` within
    ``timeout_seconds`` reads as not typing.
    """

    def __init__(
        self,
        timeout_seconds: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._timeout = timeout_seconds
        self._clock = clock
        self._seen: dict[tuple[str, int], float] = {}

    def apply(self, data: dict[str, Any]) -> None:
        key = (str(data["chat_id"]), int(data["user_id"]))
        if data.get("is_typing"):
            self._seen[key] = self._clock()
        else:
            self._seen.pop(key, None)

    def is_typing(self, chat_id: str, user_id: int) -> bool:
        key = (chat_id, user_id)
        seen = self._seen.get(key)
        if seen is None:
            return False
        if self._clock() - seen >= self._timeout:
            del self._seen[key]
            return False
        return True

    def typing_users(self, chat_id: str) -> list[int]:
        users = [uid for (cid, uid) in list(self._seen) if cid == chat_id]
        return sorted(uid for uid in users if self.is_typing(chat_id, uid))

    def clear_chat(self, chat_id: str) -> None:
        for key in [k for k in self._seen if k[0] == chat_id]:
            del self._seen[key]

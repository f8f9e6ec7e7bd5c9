"""Client-side event bus.

Each event kind holds at most one handler per scope. A screen registers its
handlers under its own scope and drops them all with :meth:`EventBus.clear_scope`
when it goes away, so re-mounting never stacks duplicate handlers.
"""
from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

Handler = Callable[[dict[str, Any]], Awaitable[None] | None]

DEFAULT_SCOPE = "default"


class EventBus:
    def __init__(self) -> None:
        self._handlers: dict[str, dict[str, Handler]] = {}

    def on(self, kind: str, handler: Handler, *, scope: str = DEFAULT_SCOPE) -> Callable[[], None]:
        """Register ``handler``, replacing any earlier one for (kind, scope).

        Returns a callable that unregisters this handler, and only this one.
        """
        self._handlers.setdefault(str(kind), {})[scope] = handler

        def _unsubscribe() -> None:
            by_scope = self._handlers.get(str(kind))
            if by_scope is not None and by_scope.get(scope) is handler:
                del by_scope[scope]
                if not by_scope:
                    del self._handlers[str(kind)]

        return _unsubscribe

    def off(self, kind: str, *, scope: str = DEFAULT_SCOPE) -> None:
        by_scope = self._handlers.get(str(kind))
        if by_scope is None:
            return
        by_scope.pop(scope, None)
        if not by_scope:
            del self._handlers[str(kind)]

    def clear_scope(self, scope: str) -> None:
        for kind in list(self._handlers):
            self.off(kind, scope=scope)

    def handlers(self, kind: str) -> list[Handler]:
        return list(self._handlers.get(str(kind), {}).values())

    async def emit(self, kind: str, data: dict[str, Any]) -> None:
        for handler in self.handlers(kind):
            try:
                result = handler(data)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Handler for %s failed", kind)

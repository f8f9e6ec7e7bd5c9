"""Routes realtime events to local connections according to their delivery rule."""
from __future__ import annotations

import logging
from uuid import UUID

from chat_sync.application.dto.events import RealtimeEvent
from chat_sync.domain.events.delivery import DELIVERY_RULES, Audience, EventKind
from chat_sync.infrastructure.ws.manager import ConnectionManager

logger = logging.getLogger(__name__)


class EventDispatcher:
    def __init__(self, manager: ConnectionManager) -> None:
        self._manager = manager

    async def dispatch(self, event: RealtimeEvent) -> list[str]:
        """Deliver ``event`` to this node's sockets. Returns unreachable connection ids."""
        try:
            kind = EventKind(event.event_type)
        except ValueError:
            logger.warning("Dropping event with unknown type %r", event.event_type)
            return []
        rule = DELIVERY_RULES.get(kind)
        if rule is None:
            logger.warning("No delivery rule for %s", kind)
            return []

        exclude = event.actor_id if rule.exclude_actor else None

        if rule.audience == Audience.ROOM:
            raw_chat_id = event.data.get("chat_id")
            try:
                chat_id = UUID(str(raw_chat_id))
            except ValueError:
                logger.warning("Room event %s without a valid chat_id", kind)
                return []
            return await self._manager.broadcast(
                chat_id, kind, event.data, exclude_user=exclude,
            )

        if rule.audience == Audience.PARTICIPANTS:
            return await self._manager.send_to_users(
                event.recipients, kind, event.data, exclude_user=exclude,
            )

        return await self._manager.broadcast_all(kind, event.data, exclude_user=exclude)

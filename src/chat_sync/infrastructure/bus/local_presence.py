"""Single-node presence: this node is the whole cluster."""
from __future__ import annotations


class LocalPresence:
    """Implements application.ports.presence.PresenceTracker without a broker."""

    def __init__(self) -> None:
        self._nodes: dict[int, int] = {}

    async def node_online(self, user_id: int) -> bool:
        self._nodes[user_id] = self._nodes.get(user_id, 0) + 1
        return self._nodes[user_id] == 1

    async def node_offline(self, user_id: int) -> bool:
        remaining = self._nodes.get(user_id, 0) - 1
        if remaining > 0:
            self._nodes[user_id] = remaining
            return False
        self._nodes.pop(user_id, None)
        return True

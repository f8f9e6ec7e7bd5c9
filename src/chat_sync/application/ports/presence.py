from __future__ import annotations

from typing import Protocol


class PresenceTracker(Protocol):
    """Counts, across nodes, how many nodes hold a live session for a user.

    Nodes report only their own transitions: the user's first session on
    the node opened, or their last one closed.
    """

    async def node_online(self, user_id: int) -> bool:
        """Return True when no other node had the user online."""
        ...

    async def node_offline(self, user_id: int) -> bool:
        """Return True when no node has the user online any more."""
        ...

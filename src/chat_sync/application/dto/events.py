from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class RealtimeEvent:
    """One event travelling from a write (or a socket frame) to the dispatcher.

    ``actor_id`` is the user whose action produced the event; delivery rules
    that exclude the actor use it. ``recipients`` is only set for events
    addressed to explicit users rather than to a room.
    """

    event_type: str
    data: dict[str, Any]
    actor_id: int | None = None
    recipients: list[int] = field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        return {
            "event_type": self.event_type,
            "actor_id": self.actor_id,
            "recipients": list(self.recipients),
            "data": self.data,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> RealtimeEvent:
        return cls(
            event_type=payload["event_type"],
            data=payload.get("data") or {},
            actor_id=payload.get("actor_id"),
            recipients=list(payload.get("recipients") or []),
        )

from __future__ import annotations

import json
from datetime import datetime
from typing import Any
from uuid import UUID

from chat_sync.application.dto.events import RealtimeEvent


class _Encoder(json.JSONEncoder):
    def default(self, o: object) -> Any:
        if isinstance(o, UUID):
            return str(o)
        if isinstance(o, datetime):
            return o.isoformat()
        return super().default(o)


def serialize_event(event: RealtimeEvent) -> str:
    envelope = {"event": str(event.event_type), "data": event.to_payload()}
    return json.dumps(envelope, cls=_Encoder)


def deserialize_event(raw: str | bytes) -> RealtimeEvent:
    envelope = json.loads(raw)
    return RealtimeEvent.from_payload(envelope["data"])

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class Session:
    """An authenticated live connection. One user may hold several."""

    user_id: int
    connection_id: str
    authenticated_at: datetime

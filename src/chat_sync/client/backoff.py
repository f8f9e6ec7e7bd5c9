from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

from chat_sync.client.config import ClientSettings


@dataclass(frozen=True, slots=True)
class ReconnectPolicy:
    """Exponential backoff: ``base_delay * 2**attempt``, capped at ``max_delay``."""

    base_delay: float = 1.0
    max_delay: float = 30.0
    max_attempts: int = 5

    @classmethod
    def from_settings(cls, settings: ClientSettings) -> ReconnectPolicy:
        return cls(
            base_delay=settings.RECONNECT_BASE_DELAY,
            max_delay=settings.RECONNECT_MAX_DELAY,
            max_attempts=settings.RECONNECT_MAX_ATTEMPTS,
        )

    def delay_for(self, attempt: int) -> float:
        return min(self.base_delay * (2 ** attempt), self.max_delay)

    def delays(self) -> Iterator[float]:
        for attempt in range(self.max_attempts):
            yield self.delay_for(attempt)

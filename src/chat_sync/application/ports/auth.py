from __future__ import annotations

from typing import Protocol

from chat_sync.application.dto.principal import Principal


class TokenVerifier(Protocol):
    async def verify(self, token: str) -> Principal:
        """Resolve a bearer token to its user. Raises AuthFailure when it does not verify."""
        ...

from __future__ import annotations

from typing import Any

import jwt

from chat_sync.application.dto.principal import Principal
from chat_sync.application.exceptions import AuthFailure


def principal_from_claims(payload: dict[str, Any]) -> Principal:
    """Build a Principal from decoded claims; ``sub`` wins over ``userId``."""
    raw = payload.get("sub", payload.get("userId"))
    try:
        user_id = int(raw)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise AuthFailure("Token carries no usable user id") from exc
    roles = payload.get("roles") or []
    return Principal(user_id=user_id, roles=list(roles))


class HS256Verifier:
    """Verify JWTs signed with a shared HS256 secret."""

    def __init__(self, secret: str, algorithm: str = "HS256") -> None:
        self._secret = secret
        self._algorithm = algorithm

    async def verify(self, token: str) -> Principal:
        try:
            payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except jwt.ExpiredSignatureError as exc:
            raise AuthFailure("Token expired") from exc
        except jwt.PyJWTError as exc:
            raise AuthFailure("Invalid token") from exc
        return principal_from_claims(payload)

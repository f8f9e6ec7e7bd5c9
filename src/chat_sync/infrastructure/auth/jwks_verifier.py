from __future__ import annotations

import asyncio
import logging

import jwt
from jwt import PyJWKClient

from chat_sync.application.dto.principal import Principal
from chat_sync.application.exceptions import AuthFailure
from chat_sync.infrastructure.auth.hs256_verifier import principal_from_claims

logger = logging.getLogger(__name__)


class JWKSVerifier:
    """Verify JWTs using a remote JWKS endpoint."""

    def __init__(self, jwks_url: str) -> None:
        self._jwks_url = jwks_url
        self._jwk_client = PyJWKClient(jwks_url)

    async def verify(self, token: str) -> Principal:
        try:
            # key fetch is blocking I/O on a cache miss
            signing_key = await asyncio.to_thread(
                self._jwk_client.get_signing_key_from_jwt, token,
            )
            payload = jwt.decode(
                token,
                signing_key.key,
                algorithms=["RS256", "ES256"],
            )
        except jwt.PyJWTError as exc:
            logger.debug("JWKS verification failed: %s", exc)
            raise AuthFailure("Invalid token") from exc
        return principal_from_claims(payload)

from __future__ import annotations

import time

import jwt
import pytest

from chat_sync.application.exceptions import AuthFailure
from chat_sync.infrastructure.auth.hs256_verifier import HS256Verifier, principal_from_claims

SECRET = "test-secret-key-with-enough-length-for-hs256"


def _token(claims: dict, secret: str = SECRET) -> str:
    return jwt.encode(claims, secret, algorithm="HS256")


@pytest.fixture
def verifier() -> HS256Verifier:
    return HS256Verifier(SECRET)


@pytest.mark.asyncio
async def test_sub_claim_is_the_user_id(verifier):
    principal = await verifier.verify(_token({"sub": "42", "roles": ["admin"]}))

    assert principal.user_id == 42
    assert principal.roles == ["admin"]


@pytest.mark.asyncio
async def test_user_id_claim_is_accepted(verifier):
    principal = await verifier.verify(_token({"userId": 7}))
    assert principal.user_id == 7


@pytest.mark.asyncio
async def test_expired_token_is_rejected(verifier):
    with pytest.raises(AuthFailure, match="expired"):
        await verifier.verify(_token({"sub": "1", "exp": int(time.time()) - 60}))


@pytest.mark.asyncio
async def test_wrong_signature_is_rejected(verifier):
    with pytest.raises(AuthFailure, match="Invalid token"):
        await verifier.verify(_token({"sub": "1"}, secret="another-secret-of-sufficient-length-123"))


@pytest.mark.asyncio
async def test_garbage_is_rejected(verifier):
    with pytest.raises(AuthFailure):
        await verifier.verify("not-a-jwt")


def test_claims_without_numeric_user_are_rejected():
    with pytest.raises(AuthFailure):
        principal_from_claims({"sub": "alice"})
    with pytest.raises(AuthFailure):
        principal_from_claims({})

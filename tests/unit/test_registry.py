from __future__ import annotations

import uuid
from datetime import datetime, timezone

import pytest

from chat_sync.application.exceptions import AuthFailure, Unauthenticated
from chat_sync.infrastructure.ws.manager import ConnectionManager
from chat_sync.infrastructure.ws.registry import ConnectionRegistry
from chat_sync.infrastructure.ws.rooms import RoomManager
from tests.conftest import ALICE, BOB, CAROL, FakeSocket, TokenIsUserId


class FixedClock:
    def now(self) -> datetime:
        return datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def registry() -> ConnectionRegistry:
    return ConnectionRegistry(TokenIsUserId(), clock=FixedClock())


@pytest.mark.asyncio
async def test_authenticate_binds_user(registry):
    registry.attach("c1", FakeSocket())

    session = await registry.authenticate("c1", str(ALICE))

    assert session.user_id == ALICE
    assert session.authenticated_at == FixedClock().now()
    assert registry.user_for("c1") == ALICE
    assert registry.is_online(ALICE)


@pytest.mark.asyncio
async def test_failed_authentication_leaves_connection_open(registry):
    registry.attach("c1", FakeSocket())

    with pytest.raises(AuthFailure):
        await registry.authenticate("c1", "garbage")
    with pytest.raises(AuthFailure):
        await registry.authenticate("c1", "")

    assert registry.is_authenticated("c1") is False
    assert registry.transport("c1") is not None
    assert (await registry.authenticate("c1", str(BOB))).user_id == BOB


def test_register_is_idempotent(registry):
    first = registry.register(ALICE, "c1")
    second = registry.register(ALICE, "c1")

    assert first is second
    assert registry.connections_for(ALICE) == {"c1"}


def test_user_stays_online_until_last_connection_goes(registry):
    registry.register(ALICE, "phone")
    registry.register(ALICE, "laptop")

    assert registry.deregister("phone") is None
    assert registry.is_online(ALICE)
    assert registry.deregister("laptop") == ALICE
    assert not registry.is_online(ALICE)
    assert registry.deregister("laptop") is None


def test_rebinding_connection_moves_it(registry):
    registry.register(ALICE, "c1")
    registry.register(BOB, "c1")

    assert registry.user_for("c1") == BOB
    assert not registry.is_online(ALICE)
    assert registry.online_users() == {BOB}


def test_join_requires_authentication(registry):
    rooms = RoomManager(registry)
    with pytest.raises(Unauthenticated):
        rooms.join("c1", uuid.uuid4())


def test_join_and_leave_are_idempotent(registry):
    rooms = RoomManager(registry)
    chat = uuid.uuid4()
    registry.register(ALICE, "c1")

    rooms.join("c1", chat)
    rooms.join("c1", chat)
    assert rooms.subscribers(chat) == {"c1"}

    rooms.leave("c1", chat)
    rooms.leave("c1", chat)
    assert rooms.subscribers(chat) == set()
    assert rooms.rooms_for("c1") == set()


def test_drop_connection_leaves_every_room(registry):
    rooms = RoomManager(registry)
    a, b = uuid.uuid4(), uuid.uuid4()
    registry.register(ALICE, "c1")
    registry.register(BOB, "c2")
    rooms.join("c1", a)
    rooms.join("c1", b)
    rooms.join("c2", a)

    dropped = rooms.drop_connection("c1")

    assert dropped == {a, b}
    assert rooms.subscribers(a) == {"c2"}
    assert rooms.subscribers(b) == set()


@pytest.mark.asyncio
async def test_switching_user_drops_the_connection_from_its_rooms(registry):
    manager = ConnectionManager(registry)
    chat = uuid.uuid4()
    registry.attach("c1", FakeSocket())
    await manager.authenticate("c1", str(ALICE))
    manager.rooms.join("c1", chat)

    session, replaced = await manager.authenticate("c1", str(CAROL))

    assert session.user_id == CAROL
    assert replaced == ALICE
    assert manager.rooms.rooms_for("c1") == set()
    assert manager.rooms.subscribers(chat) == set()


@pytest.mark.asyncio
async def test_reauthenticating_same_user_keeps_rooms(registry):
    manager = ConnectionManager(registry)
    chat = uuid.uuid4()
    registry.attach("c1", FakeSocket())
    registry.attach("c2", FakeSocket())
    await manager.authenticate("c1", str(ALICE))
    await manager.authenticate("c2", str(ALICE))
    manager.rooms.join("c1", chat)

    _, replaced = await manager.authenticate("c1", str(ALICE))
    assert replaced is None
    assert manager.rooms.is_subscribed("c1", chat)

    _, replaced = await manager.authenticate("c1", str(BOB))
    assert replaced is None  # ALICE is still on c2
    assert not manager.rooms.is_subscribed("c1", chat)

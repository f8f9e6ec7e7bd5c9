from __future__ import annotations

import asyncio
import json

import pytest

from chat_sync.application.exceptions import AuthFailure, ReconnectExhausted, TransportDrop
from chat_sync.client.backoff import ReconnectPolicy
from chat_sync.client.connection import ConnectionController, ConnectionState
from chat_sync.client.events import EventBus

_DROP = object()


class ScriptedChannel:
    """Answers ``authenticate`` like the server would and records every frame."""

    def __init__(self, transport: ScriptedTransport) -> None:
        self._transport = transport
        self._inbox: asyncio.Queue = asyncio.Queue()
        self.sent: list[dict] = []
        self.closed = False

    async def send(self, data: str) -> None:
        if self.closed:
            raise TransportDrop("closed")
        msg = json.loads(data)
        self.sent.append(msg)
        if msg["type"] == "authenticate":
            token = msg["data"]["token"]
            if token in self._transport.accepted:
                self.push("authenticated", {"user_id": self._transport.accepted[token]})
            else:
                self.push("authentication-error", {"detail": "Invalid token"})

    async def recv(self) -> str:
        item = await self._inbox.get()
        if item is _DROP:
            self.closed = True
            raise TransportDrop("connection reset")
        return item

    async def close(self) -> None:
        self.closed = True

    def push(self, kind: str, data: dict) -> None:
        self._inbox.put_nowait(json.dumps({"type": kind, "data": data}))

    def drop(self) -> None:
        self._inbox.put_nowait(_DROP)

    def types(self) -> list[str]:
        return [m["type"] for m in self.sent]


class ScriptedTransport:
    def __init__(self) -> None:
        self.accepted: dict[str, int] = {"good": 1}
        self.refuse_opens = 0
        self.opens = 0
        self.channels: list[ScriptedChannel] = []

    async def open(self, url: str) -> ScriptedChannel:
        self.opens += 1
        if self.refuse_opens:
            self.refuse_opens -= 1
            raise TransportDrop("connection refused")
        channel = ScriptedChannel(self)
        self.channels.append(channel)
        return channel


class RecordingSleep:
    def __init__(self, block: bool = False) -> None:
        self.delays: list[float] = []
        self._block = block

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if self._block:
            await asyncio.Event().wait()
        await asyncio.sleep(0)


async def _settle(predicate, rounds: int = 200) -> None:
    for _ in range(rounds):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


@pytest.fixture
def transport() -> ScriptedTransport:
    return ScriptedTransport()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def controller(transport, sleep) -> ConnectionController:
    return ConnectionController(
        "ws://test/ws/chat",
        transport=transport,
        policy=ReconnectPolicy(base_delay=1.0, max_delay=3.0, max_attempts=3),
        sleep=sleep,
    )


@pytest.mark.asyncio
async def test_connect_authenticates_and_goes_active(controller, transport):
    states: list[ConnectionState] = []
    controller.add_state_listener(lambda state, error: states.append(state))

    await controller.connect("good")

    assert controller.state == ConnectionState.ACTIVE
    assert controller.user_id == 1
    assert states == [
        ConnectionState.CONNECTING,
        ConnectionState.AUTHENTICATING,
        ConnectionState.ACTIVE,
    ]
    assert transport.channels[0].types() == ["authenticate"]
    await controller.disconnect()


@pytest.mark.asyncio
async def test_rejected_token_is_terminal(controller, transport, sleep):
    with pytest.raises(AuthFailure):
        await controller.connect("bad")

    assert controller.state == ConnectionState.DISCONNECTED
    assert isinstance(controller.last_error, AuthFailure)
    assert transport.channels[0].closed
    assert sleep.delays == []
    with pytest.raises(AuthFailure):
        await controller.resume()
    assert transport.opens == 1


@pytest.mark.asyncio
async def test_unreachable_server_leaves_controller_disconnected(controller, transport):
    transport.refuse_opens = 1

    with pytest.raises(TransportDrop):
        await controller.connect("good")

    assert controller.state == ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_drop_reconnects_and_rejoins_rooms(controller, transport, sleep):
    await controller.connect("good")
    await controller.join("chat-b")
    await controller.join("chat-a")
    await controller.join("chat-c")
    await controller.leave("chat-c")

    transport.channels[0].drop()
    await _settle(lambda: len(transport.channels) == 2 and controller.is_active)

    assert sleep.delays == [1.0]
    rejoined = transport.channels[1].sent
    assert [m["type"] for m in rejoined] == ["authenticate", "join-chat", "join-chat"]
    assert [m["data"]["chat_id"] for m in rejoined[1:]] == ["chat-a", "chat-b"]
    await controller.disconnect()


@pytest.mark.asyncio
async def test_backoff_grows_until_attempts_run_out(controller, transport, sleep):
    errors = []
    controller.add_state_listener(lambda state, error: errors.append(error) if error else None)
    await controller.connect("good")

    transport.refuse_opens = 10
    transport.channels[0].drop()
    await _settle(lambda: controller.state == ConnectionState.DISCONNECTED)

    assert sleep.delays == [1.0, 2.0, 3.0]
    assert transport.opens == 4
    assert isinstance(controller.last_error, ReconnectExhausted)
    assert isinstance(errors[-1], ReconnectExhausted)


@pytest.mark.asyncio
async def test_recovers_after_a_failed_attempt(controller, transport, sleep):
    await controller.connect("good")
    await controller.join("chat-a")

    transport.refuse_opens = 1
    transport.channels[0].drop()
    await _settle(lambda: controller.is_active and len(transport.channels) == 2)

    assert sleep.delays == [1.0, 2.0]
    assert transport.channels[1].types() == ["authenticate", "join-chat"]
    await controller.disconnect()


@pytest.mark.asyncio
async def test_credential_rejected_during_reconnect_stops_retrying(controller, transport, sleep):
    await controller.connect("good")
    transport.accepted = {}

    transport.channels[0].drop()
    await _settle(lambda: controller.state == ConnectionState.DISCONNECTED)

    assert sleep.delays == [1.0]
    assert isinstance(controller.last_error, AuthFailure)
    assert transport.opens == 2


@pytest.mark.asyncio
async def test_disconnect_cancels_pending_reconnect(transport):
    sleep = RecordingSleep(block=True)
    controller = ConnectionController(
        "ws://test/ws/chat", transport=transport, policy=ReconnectPolicy(), sleep=sleep,
    )
    await controller.connect("good")

    transport.channels[0].drop()
    await _settle(lambda: sleep.delays == [1.0])
    assert controller.state == ConnectionState.RECONNECTING

    await controller.disconnect()

    assert controller.state == ConnectionState.DISCONNECTED
    assert transport.opens == 1


@pytest.mark.asyncio
async def test_resume_reuses_token_and_rooms(controller, transport):
    await controller.connect("good")
    await controller.join("chat-a")
    await controller.disconnect()

    await controller.resume()

    assert controller.is_active
    assert transport.channels[1].types() == ["authenticate", "join-chat"]
    await controller.disconnect()


@pytest.mark.asyncio
async def test_commands_need_an_active_connection(controller):
    await controller.join("chat-a")
    await controller.typing("chat-a", True)

    assert controller.rooms == frozenset({"chat-a"})
    with pytest.raises(TransportDrop):
        await controller.send_message("chat-a", "hi")


@pytest.mark.asyncio
async def test_server_events_reach_the_bus(transport, sleep):
    bus = EventBus()
    received: list[dict] = []
    bus.on("typing", received.append)
    controller = ConnectionController("ws://test", transport=transport, bus=bus, sleep=sleep)
    await controller.connect("good")

    transport.channels[0].push("typing", {"chat_id": "c", "user_id": 2, "is_typing": True})
    await _settle(lambda: bool(received))

    assert received == [{"chat_id": "c", "user_id": 2, "is_typing": True}]
    await controller.disconnect()


@pytest.mark.asyncio
async def test_send_message_returns_idempotency_key(controller, transport):
    await controller.connect("good")

    key = await controller.send_message("chat-a", "hi")
    again = await controller.send_message("chat-a", "hi", client_msg_id=key)

    frames = transport.channels[0].sent[1:]
    assert again == key
    assert [f["data"]["client_msg_id"] for f in frames] == [key, key]
    await controller.disconnect()

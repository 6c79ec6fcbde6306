import asyncio
import json
import logging

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from wellness_messaging.config import EVENTS_EXCHANGE
from wellness_messaging.services.delivery_gateway import DeliveryGateway
from wellness_messaging.utils.realtime_bus import NoopBus
from wellness_messaging.utils.websocket_manager import ConnectionManager


class FakeWebSocket:

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.accepted = False
        self.sent = []

    async def accept(self) -> None:
        self.accepted = True

    async def send_text(self, text: str) -> None:
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(json.loads(text))


class HangingWebSocket(FakeWebSocket):

    async def send_text(self, text: str) -> None:
        await asyncio.Event().wait()


class FakeBus:

    enabled = True

    def __init__(self, fail: bool = False, hang: bool = False) -> None:
        self.fail = fail
        self.hang = hang
        self.published = []

    async def publish(self, channel: str, message: str) -> None:
        if self.hang:
            await asyncio.Event().wait()
        if self.fail:
            raise RedisConnectionError("redis down")
        self.published.append((channel, json.loads(message)))


@pytest.mark.asyncio
async def test_notify_reaches_every_session_of_the_user():
    manager = ConnectionManager()
    phone, laptop, other = FakeWebSocket(), FakeWebSocket(), FakeWebSocket()
    await manager.connect(200, phone)
    await manager.connect(200, laptop)
    await manager.connect(300, other)
    gateway = DeliveryGateway(manager, NoopBus())

    gateway.notify_user(200, "messages", {"id": "m1", "content": "hi"})
    await gateway.drain()

    expected = {"channel": "messages", "payload": {"id": "m1", "content": "hi"}}
    assert phone.sent == [expected]
    assert laptop.sent == [expected]
    assert other.sent == []


@pytest.mark.asyncio
async def test_worker_delivers_in_background():
    manager = ConnectionManager()
    ws = FakeWebSocket()
    await manager.connect(100, ws)
    gateway = DeliveryGateway(manager, NoopBus())
    await gateway.start()
    try:
        gateway.notify_user(100, "read-receipts", "m1")
        gateway.notify_user(100, "typing", {"user_id": 200, "display_name": "Bruno"})
        await gateway.drain()
    finally:
        await gateway.stop()

    assert [frame["channel"] for frame in ws.sent] == ["read-receipts", "typing"]
    assert ws.sent[0]["payload"] == "m1"


@pytest.mark.asyncio
async def test_user_without_session_is_a_noop():
    gateway = DeliveryGateway(ConnectionManager(), NoopBus())

    gateway.notify_user(404, "messages", {"id": "m1"})
    await gateway.drain()


@pytest.mark.asyncio
async def test_broken_session_is_logged_and_dropped(caplog):
    manager = ConnectionManager()
    await manager.connect(200, FakeWebSocket(fail=True))
    gateway = DeliveryGateway(manager, NoopBus())

    with caplog.at_level(logging.WARNING, logger="wellness_messaging"):
        gateway.notify_user(200, "messages", {"id": "m1"})
        await gateway.drain()

    assert "Delivery failed" in caplog.text
    assert manager.is_connected(200) is False


@pytest.mark.asyncio
async def test_one_broken_session_does_not_block_the_others():
    manager = ConnectionManager()
    healthy = FakeWebSocket()
    await manager.connect(200, FakeWebSocket(fail=True))
    await manager.connect(200, healthy)
    gateway = DeliveryGateway(manager, NoopBus())

    gateway.notify_user(200, "messages", {"id": "m1"})
    await gateway.drain()

    assert len(healthy.sent) == 1
    assert len(manager.active_connections[200]) == 1


@pytest.mark.asyncio
async def test_redis_bus_routes_by_user_channel():
    bus = FakeBus()
    gateway = DeliveryGateway(ConnectionManager(), bus)

    gateway.notify_user(200, "messages", {"id": "m1"})
    gateway.publish_event("message.sent", {"id": "m1"})
    await gateway.drain()

    assert bus.published == [
        ("user:200", {"channel": "messages", "payload": {"id": "m1"}}),
        (f"{EVENTS_EXCHANGE}.message.sent", {"id": "m1"}),
    ]


@pytest.mark.asyncio
async def test_redis_failure_is_logged_not_raised(caplog):
    gateway = DeliveryGateway(ConnectionManager(), FakeBus(fail=True))

    with caplog.at_level(logging.WARNING, logger="wellness_messaging"):
        gateway.notify_user(200, "messages", {"id": "m1"})
        await gateway.drain()

    assert "redis down" in caplog.text


@pytest.mark.asyncio
async def test_full_queue_drops_instead_of_blocking(caplog):
    manager = ConnectionManager()
    ws = FakeWebSocket()
    await manager.connect(200, ws)
    gateway = DeliveryGateway(manager, NoopBus(), queue_size=1)

    with caplog.at_level(logging.WARNING, logger="wellness_messaging"):
        gateway.notify_user(200, "messages", {"id": "m1"})
        gateway.notify_user(200, "messages", {"id": "m2"})
        await gateway.drain()

    assert [frame["payload"]["id"] for frame in ws.sent] == ["m1"]
    assert "queue full" in caplog.text


@pytest.mark.asyncio
async def test_stalled_session_does_not_hold_up_other_users(caplog):
    manager = ConnectionManager(send_timeout=0.05)
    healthy = FakeWebSocket()
    await manager.connect(1, HangingWebSocket())
    await manager.connect(2, healthy)
    gateway = DeliveryGateway(manager, NoopBus())
    await gateway.start()
    try:
        with caplog.at_level(logging.WARNING, logger="wellness_messaging"):
            gateway.notify_user(1, "messages", {"id": "m1"})
            gateway.notify_user(2, "messages", {"id": "m2"})
            await asyncio.wait_for(gateway.drain(), timeout=1)
    finally:
        await gateway.stop()

    assert [frame["payload"]["id"] for frame in healthy.sent] == ["m2"]
    assert manager.is_connected(1) is False
    assert "stalled" in caplog.text


@pytest.mark.asyncio
async def test_stalled_redis_publish_times_out(caplog):
    gateway = DeliveryGateway(ConnectionManager(), FakeBus(hang=True), publish_timeout=0.05)

    with caplog.at_level(logging.WARNING, logger="wellness_messaging"):
        gateway.notify_user(200, "messages", {"id": "m1"})
        await asyncio.wait_for(gateway.drain(), timeout=1)

    assert "timed out" in caplog.text


@pytest.mark.asyncio
async def test_stop_gives_up_on_a_stuck_queue(caplog):
    manager = ConnectionManager(send_timeout=60)
    await manager.connect(1, HangingWebSocket())
    gateway = DeliveryGateway(manager, NoopBus(), shutdown_timeout=0.05)
    await gateway.start()
    gateway.notify_user(1, "messages", {"id": "m1"})
    gateway.notify_user(1, "messages", {"id": "m2"})

    with caplog.at_level(logging.WARNING, logger="wellness_messaging"):
        await asyncio.wait_for(gateway.stop(), timeout=1)

    assert "not drained" in caplog.text

"""RedisBroker tests — the redis.asyncio adapter behind the bridge.

Learn: FakeRedis mimics the slice of redis.asyncio.Redis the broker uses:
publish(), ping(), aclose() and pubsub(). Its PubSub replays canned
frames from listen() and then blocks, like an idle subscription.
"""

import asyncio

import pytest
import redis

from conftest import drain
from huddle.realtime.events import Event, EventType
from huddle.realtime.pubsub import PubSubBridge, RedisBroker
from huddle.realtime.service import RealtimeService

CHANNEL = "websocket-events"


class FakePubSub:
    def __init__(self, frames=(), dead=False):
        self.frames = list(frames)
        self.dead = dead
        self.channels: list[str] = []
        self.closed = False

    async def subscribe(self, channel):
        self.channels.append(channel)

    async def listen(self):
        for frame in self.frames:
            yield frame
        await asyncio.Event().wait()

    async def unsubscribe(self, channel):
        if self.dead:
            raise redis.exceptions.ConnectionError("Connection closed by server.")
        self.channels.remove(channel)

    async def aclose(self):
        if self.dead:
            raise redis.exceptions.ConnectionError("Connection closed by server.")
        self.closed = True


class FakeRedis:
    def __init__(self, pubsub: FakePubSub):
        self._pubsub = pubsub
        self.pubsub_calls = 0
        self.published: list[tuple[str, str]] = []
        self.closed = False

    def pubsub(self):
        self.pubsub_calls += 1
        return self._pubsub

    async def publish(self, channel, message):
        self.published.append((channel, message))

    async def ping(self):
        return True

    async def aclose(self):
        self.closed = True


async def _until(predicate):
    for _ in range(200):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


@pytest.mark.asyncio
async def test_subscribe_forwards_only_message_frames():
    pubsub = FakePubSub(frames=[
        {"type": "subscribe", "channel": CHANNEL, "data": 1},
        {"type": "message", "channel": CHANNEL, "data": "hello"},
        {"type": "pong", "channel": None, "data": ""},
        {"type": "message", "channel": CHANNEL, "data": "world"},
    ])
    client = FakeRedis(pubsub)
    broker = RedisBroker(client)
    received = []

    async def on_message(data):
        received.append(data)

    task = asyncio.create_task(broker.subscribe(CHANNEL, on_message))
    await _until(lambda: len(received) == 2)

    assert received == ["hello", "world"]
    assert pubsub.channels == [CHANNEL]
    assert client.pubsub_calls == 1

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert pubsub.channels == []
    assert pubsub.closed is True


@pytest.mark.asyncio
async def test_cancel_on_dead_connection_still_cancels():
    pubsub = FakePubSub(dead=True)
    broker = RedisBroker(FakeRedis(pubsub))

    async def on_message(data):
        pass

    task = asyncio.create_task(broker.subscribe(CHANNEL, on_message))
    await _until(lambda: pubsub.channels == [CHANNEL])

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task


@pytest.mark.asyncio
async def test_bridge_stops_when_redis_link_is_dead():
    pubsub = FakePubSub(dead=True)
    service = RealtimeService.build()
    bridge = PubSubBridge(
        service.dispatcher,
        RedisBroker(FakeRedis(pubsub)),
        channel=CHANNEL,
        retry_delay=0.01,
    )

    await bridge.start()
    await _until(lambda: pubsub.channels == [CHANNEL])

    await asyncio.wait_for(bridge.stop(), timeout=1)
    assert bridge._listener is None


@pytest.mark.asyncio
async def test_remote_envelope_reaches_local_members():
    remote = Event(EventType.TYPING, {"roomId": "room1", "userId": "u2", "isTyping": True})
    pubsub = FakePubSub(frames=[
        {"type": "subscribe", "channel": CHANNEL, "data": 1},
        {"type": "message", "channel": CHANNEL, "data": remote.to_wire("other-instance")},
    ])
    client = FakeRedis(pubsub)
    service = RealtimeService.build(RedisBroker(client), channel=CHANNEL, instance_id="me")
    conn = service.connect()
    service.registry.join_room(conn.id, "room1")

    await service.start()
    await _until(lambda: not conn.outbox.empty())
    assert drain(conn) == [{
        "type": "typing",
        "data": {"roomId": "room1", "userId": "u2", "isTyping": True},
    }]

    service.broadcast(EventType.TYPING, {"roomId": "room1", "userId": "u1", "isTyping": False})
    await service.bridge.drain()
    (channel, raw), = client.published
    assert channel == CHANNEL
    assert '"origin": "me"' in raw

    await service.stop()

"""Redis pub/sub bridge — relays events between server instances.

Learn: Redis pub/sub is fire-and-forget. If no instance is listening, the
message is lost. That's fine for real-time UI updates: chat messages and
notifications are written to the database before they are published, so
clients can always catch up over the REST API.

Every instance publishes to one shared channel and subscribes to the same
channel. Envelopes carry the publishing instance's id so an instance
ignores its own echo (it already delivered locally).

With no broker configured the bridge is disabled once, at startup, and
publish() becomes a no-op. Same code, single node or cluster.
"""

import asyncio
import contextlib
import uuid
from typing import Awaitable, Callable, Optional, Protocol

import redis.asyncio as aioredis
from redis.asyncio.client import PubSub
import structlog

from huddle.realtime.dispatcher import LocalDispatcher
from huddle.realtime.errors import BridgeUnavailable, MalformedRemoteEvent
from huddle.realtime.events import Event
from huddle.realtime.result import Result
from huddle.realtime.rooms import InvalidRoom

logger = structlog.get_logger()

MessageCallback = Callable[[str], Awaitable[object]]


class Broker(Protocol):
    """The slice of a pub/sub client the bridge needs."""

    async def publish(self, channel: str, message: str) -> None: ...

    async def subscribe(self, channel: str, callback: MessageCallback) -> None:
        """Deliver every message on `channel` to `callback` until cancelled."""
        ...

    async def close(self) -> None: ...


class RedisBroker:
    """Broker backed by redis.asyncio.

    Learn: a connection in SUBSCRIBE mode can't issue other commands, so
    the subscriber is a dedicated PubSub connection taken from the
    publishing client's pool and used for nothing else.
    """

    def __init__(self, client: aioredis.Redis):
        self.client = client
        self._pubsub: Optional[PubSub] = None

    @classmethod
    def from_url(cls, url: str) -> "RedisBroker":
        return cls(aioredis.from_url(url, encoding="utf-8", decode_responses=True))

    async def ping(self) -> None:
        await self.client.ping()

    async def publish(self, channel: str, message: str) -> None:
        await self.client.publish(channel, message)

    async def subscribe(self, channel: str, callback: MessageCallback) -> None:
        pubsub = self.client.pubsub()
        self._pubsub = pubsub
        await pubsub.subscribe(channel)
        try:
            async for message in pubsub.listen():
                if message["type"] == "message":
                    await callback(message["data"])
        finally:
            self._pubsub = None
            # A dead link fails cleanup too; that must not mask a cancel.
            with contextlib.suppress(Exception):
                await pubsub.unsubscribe(channel)
            with contextlib.suppress(Exception):
                await pubsub.aclose()

    async def close(self) -> None:
        if self._pubsub is not None:
            await self._pubsub.aclose()
        await self.client.aclose()


class PubSubBridge:
    """Mirror locally-originated events to every other instance."""

    def __init__(
        self,
        dispatcher: LocalDispatcher,
        broker: Optional[Broker] = None,
        channel: str = "websocket-events",
        instance_id: Optional[str] = None,
        retry_delay: float = 1.0,
        max_retry_delay: float = 30.0,
    ):
        self.dispatcher = dispatcher
        self.broker = broker
        self.channel = channel
        self.instance_id = instance_id or uuid.uuid4().hex
        self.retry_delay = retry_delay
        self.max_retry_delay = max_retry_delay
        self._pending: set[asyncio.Task] = set()
        self._listener: Optional[asyncio.Task] = None

    @property
    def enabled(self) -> bool:
        return self.broker is not None

    @property
    def mode(self) -> str:
        return "clustered" if self.enabled else "single-instance"

    # ─── Outbound ─────────────────────────────────────────

    def publish(self, event: Event) -> Optional[asyncio.Task]:
        """Schedule a publish and return immediately.

        The returned task resolves to a Result; failures are logged there
        and never reach the caller.
        """
        if not self.enabled:
            return None
        task = asyncio.create_task(self._send(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _send(self, event: Event) -> Result[None]:
        try:
            await self.broker.publish(self.channel, event.to_wire(self.instance_id))
        except Exception as e:
            error = BridgeUnavailable(str(e))
            logger.warning(
                "bridge.publish_failed",
                event_type=event.type.value,
                channel=self.channel,
                error=str(e),
            )
            return Result.failure(error)
        return Result.success()

    async def drain(self) -> None:
        """Wait for in-flight publishes to settle."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ─── Inbound ──────────────────────────────────────────

    async def on_remote_event(self, raw: str) -> int:
        """Decode a broker message and deliver it locally.

        Returns the number of local connections reached. Malformed
        messages are dropped; this never raises into the subscriber loop.
        """
        try:
            event, origin = Event.from_wire(raw)
        except MalformedRemoteEvent as e:
            logger.warning("bridge.malformed_event", error=str(e))
            return 0

        if origin == self.instance_id:
            return 0

        try:
            return self.dispatcher.deliver(event)
        except InvalidRoom as e:
            logger.warning(
                "bridge.unroutable_event",
                event_type=event.type.value,
                error=str(e),
            )
            return 0

    async def start(self) -> None:
        """Start the subscriber task (no-op in single-instance mode)."""
        if not self.enabled or self._listener is not None:
            return
        self._listener = asyncio.create_task(self._listen())
        logger.info("bridge.started", channel=self.channel, instance_id=self.instance_id)

    async def _listen(self) -> None:
        delay = self.retry_delay
        while True:
            try:
                await self.broker.subscribe(self.channel, self.on_remote_event)
                delay = self.retry_delay
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if asyncio.current_task().cancelling():
                    raise asyncio.CancelledError() from e
                logger.error(
                    "bridge.subscribe_failed",
                    channel=self.channel,
                    error=str(e),
                    retry_in=delay,
                )
            await asyncio.sleep(delay)
            delay = min(delay * 2, self.max_retry_delay)

    async def stop(self) -> None:
        if self._listener is not None:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            self._listener = None
        await self.drain()

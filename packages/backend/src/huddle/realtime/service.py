"""Realtime service — the one object that owns fan-out state for a process.

Learn: built once in the app lifespan and stored on app.state. Socket
handlers and REST routes both reach it from there; nothing in this
package keeps module-level broker handles.

emit() is the whole delivery contract in two lines: deliver to local
members first, then hand the event to the bridge. The bridge call only
schedules a task, so a slow or dead broker can't delay local delivery.
"""

from typing import Any, Mapping, Optional

import structlog

from huddle.realtime.dispatcher import LocalDispatcher
from huddle.realtime.events import Event, EventType
from huddle.realtime.pubsub import Broker, PubSubBridge
from huddle.realtime.registry import Connection, ConnectionRegistry

logger = structlog.get_logger()


class RealtimeService:
    def __init__(
        self,
        registry: ConnectionRegistry,
        dispatcher: LocalDispatcher,
        bridge: PubSubBridge,
    ):
        self.registry = registry
        self.dispatcher = dispatcher
        self.bridge = bridge

    @classmethod
    def build(
        cls,
        broker: Optional[Broker] = None,
        *,
        channel: str = "websocket-events",
        max_rooms_per_connection: int = 100,
        outbox_size: int = 256,
        instance_id: Optional[str] = None,
    ) -> "RealtimeService":
        registry = ConnectionRegistry(
            max_rooms_per_connection=max_rooms_per_connection,
            outbox_size=outbox_size,
        )
        dispatcher = LocalDispatcher(registry)
        bridge = PubSubBridge(
            dispatcher, broker, channel=channel, instance_id=instance_id
        )
        return cls(registry, dispatcher, bridge)

    # ─── Lifecycle ────────────────────────────────────────

    async def start(self) -> None:
        await self.bridge.start()
        logger.info("realtime.started", mode=self.bridge.mode)

    async def stop(self) -> None:
        dropped = self.registry.shutdown()
        await self.bridge.stop()
        logger.info("realtime.stopped", dropped_connections=dropped)

    def connect(self, token_subject: Optional[str] = None) -> Connection:
        conn = self.registry.register()
        conn.token_subject = token_subject
        return conn

    # ─── Delivery ─────────────────────────────────────────

    def emit(self, event: Event, exclude: Optional[str] = None) -> int:
        """Deliver locally, then publish to other instances."""
        delivered = self.dispatcher.deliver(event, exclude=exclude)
        self.bridge.publish(event)
        return delivered

    def broadcast(self, event_type: str | EventType, payload: Mapping[str, Any]) -> int:
        """Entry point for the REST layer.

        e.g. broadcast("taskUpdated", {"projectId": ..., "task": ...}) after
        a task is changed over HTTP. Raises ValueError for unknown event
        types or payloads missing their routing key.
        """
        event = Event(type=EventType(event_type), data=payload)
        return self.emit(event)

    def deliver_notification(self, notification: Mapping[str, Any]) -> int:
        """Fan out an already-persisted notification to its recipient."""
        event = Event(type=EventType.NOTIFICATION, data=notification)
        user_id = event.data.get("userId")
        if user_id:
            delivered = self.dispatcher.deliver_to_user(user_id, event)
            self.bridge.publish(event)
            return delivered
        return self.emit(event)

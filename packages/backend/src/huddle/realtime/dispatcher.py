"""Local dispatcher — delivers events to the connections this process holds.

Delivery means "placed on the member's outbound queue". A member that
disconnects before its writer flushes simply loses the frame.
"""

from typing import Optional

import structlog

from huddle.realtime.events import Event, target_room
from huddle.realtime.registry import ConnectionRegistry
from huddle.realtime.rooms import user_room

logger = structlog.get_logger()


class LocalDispatcher:
    """Fan an event out to every local member of a room."""

    def __init__(self, registry: ConnectionRegistry):
        self.registry = registry

    def deliver_to_room(
        self,
        room: str,
        event: Event,
        exclude: Optional[str] = None,
    ) -> int:
        """Queue the event for every member of `room` except `exclude`.

        Returns the number of connections that accepted the frame.
        """
        frame = event.frame()
        delivered = 0
        for conn in self.registry.members(room):
            if conn.id == exclude:
                continue
            if conn.enqueue(frame):
                delivered += 1
        logger.debug(
            "dispatch.room",
            room=room,
            event_type=event.type.value,
            delivered=delivered,
        )
        return delivered

    def deliver_to_user(
        self,
        user_id: str,
        event: Event,
        exclude: Optional[str] = None,
    ) -> int:
        """Deliver on the user's personal notification room."""
        return self.deliver_to_room(user_room(user_id), event, exclude=exclude)

    def deliver(self, event: Event, exclude: Optional[str] = None) -> int:
        """Route by event type and deliver. Informational events go nowhere."""
        room = target_room(event)
        if room is None:
            return 0
        return self.deliver_to_room(room, event, exclude=exclude)

"""Outbound event protocol — the closed set of events clients receive.

Learn: every event carries a type tag and a JSON-safe payload. Routing is a
pure function of the two, so a process that never saw the original socket
frame (a remote instance fed by Redis) routes it exactly like the
originating process did.

Wire envelope published on the broker channel:

    {"type": "message", "data": {...}, "timestamp": "...", "origin": "<instance>"}
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional

from fastapi.encoders import jsonable_encoder

from huddle.realtime.errors import MalformedRemoteEvent
from huddle.realtime.rooms import (
    NOTIFICATIONS_ROOM,
    InvalidRoom,
    chat_room,
    document_room,
    project_room,
    user_room,
)


class EventType(str, Enum):
    USER_JOINED = "userJoined"
    MESSAGE = "message"
    TYPING = "typing"
    DOCUMENT_UPDATE = "documentUpdate"
    TASK_UPDATED = "taskUpdated"
    USER_DISCONNECTED = "userDisconnected"
    NOTIFICATION = "notification"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Event:
    """An immutable outbound event."""

    type: EventType
    data: Mapping[str, Any]
    timestamp: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        object.__setattr__(self, "type", EventType(self.type))
        object.__setattr__(
            self, "data", MappingProxyType(jsonable_encoder(dict(self.data)))
        )

    def frame(self) -> dict[str, Any]:
        """The JSON frame written to a client socket."""
        return {"type": self.type.value, "data": dict(self.data)}

    def to_wire(self, origin: Optional[str] = None) -> str:
        return json.dumps({
            "type": self.type.value,
            "data": dict(self.data),
            "timestamp": self.timestamp.isoformat(),
            "origin": origin,
        })

    @classmethod
    def from_wire(cls, raw: str | bytes) -> tuple["Event", Optional[str]]:
        """Decode a broker envelope. Returns (event, origin).

        Raises MalformedRemoteEvent for anything that is not a well-formed
        envelope of a known event type.
        """
        try:
            envelope = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise MalformedRemoteEvent(f"Invalid JSON: {e}") from e

        if not isinstance(envelope, dict):
            raise MalformedRemoteEvent("Envelope must be a JSON object")

        try:
            event_type = EventType(envelope.get("type"))
        except ValueError:
            raise MalformedRemoteEvent(f"Unknown event type: {envelope.get('type')!r}")

        data = envelope.get("data")
        if not isinstance(data, dict):
            raise MalformedRemoteEvent("Envelope data must be a JSON object")

        timestamp = utcnow()
        if envelope.get("timestamp"):
            try:
                timestamp = datetime.fromisoformat(envelope["timestamp"])
            except (TypeError, ValueError):
                raise MalformedRemoteEvent(
                    f"Invalid timestamp: {envelope['timestamp']!r}"
                )

        origin = envelope.get("origin")
        return cls(type=event_type, data=data, timestamp=timestamp), origin


def target_room(event: Event) -> Optional[str]:
    """The room an event fans out to. None means informational only.

    Raises InvalidRoom when the payload lacks the field its type routes on.
    """
    data = event.data
    match event.type:
        case EventType.USER_JOINED | EventType.TYPING:
            return chat_room(data.get("roomId"))
        case EventType.MESSAGE:
            return chat_room(data.get("roomId") or data.get("chat"))
        case EventType.DOCUMENT_UPDATE:
            return document_room(data.get("documentId"))
        case EventType.TASK_UPDATED:
            return project_room(data.get("projectId"))
        case EventType.NOTIFICATION:
            if data.get("userId"):
                return user_room(data["userId"])
            return NOTIFICATIONS_ROOM
        case EventType.USER_DISCONNECTED:
            return None
    raise InvalidRoom(f"No routing rule for {event.type!r}")

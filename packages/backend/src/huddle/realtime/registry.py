"""Connection registry — live sockets, their identity and room memberships.

Learn: two indexes are kept in step. Each Connection knows its rooms, and
each room knows its member connection ids. leave_all() walks the first
index to clean the second, so disconnect costs O(rooms joined) rather than
a scan over every connection.

None of these methods await. On the asyncio loop that makes every
mutation atomic with respect to other handlers; a threaded server would
need a lock around both indexes.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Any, Iterator, Optional

import structlog

from huddle.realtime.errors import RoomLimitExceeded, UnknownConnection
from huddle.realtime.rooms import validate_room

logger = structlog.get_logger()


@dataclass(eq=False)
class Connection:
    """One client socket held by this process.

    Outbound frames go through a bounded queue; the socket's writer task
    drains it. A closed connection silently refuses new frames.
    """

    id: str
    outbox: asyncio.Queue
    user_id: Optional[str] = None
    token_subject: Optional[str] = None
    rooms: set[str] = field(default_factory=set)
    closed: bool = False

    def enqueue(self, frame: dict[str, Any]) -> bool:
        """Queue a frame for the writer. Returns False if it was dropped."""
        if self.closed:
            return False
        try:
            self.outbox.put_nowait(frame)
        except asyncio.QueueFull:
            logger.warning(
                "ws.outbox_full",
                connection_id=self.id,
                event_type=frame.get("type"),
                size=self.outbox.maxsize,
            )
            return False
        return True


class ConnectionRegistry:
    """Per-process map of connection → identity + rooms, and room → members."""

    def __init__(self, max_rooms_per_connection: int = 100, outbox_size: int = 256):
        self.max_rooms_per_connection = max_rooms_per_connection
        self.outbox_size = outbox_size
        self._connections: dict[str, Connection] = {}
        self._rooms: dict[str, set[str]] = {}

    # ─── Lifecycle ────────────────────────────────────────

    def register(self, connection_id: Optional[str] = None) -> Connection:
        """Create an empty membership record for a new socket."""
        connection_id = connection_id or str(uuid.uuid4())
        if connection_id in self._connections:
            raise ValueError(f"Connection {connection_id} is already registered")
        conn = Connection(
            id=connection_id,
            outbox=asyncio.Queue(maxsize=self.outbox_size),
        )
        self._connections[connection_id] = conn
        return conn

    def identify(self, connection_id: str, user_id: str) -> Connection:
        """Bind a (client-declared) user id to the connection."""
        conn = self._require(connection_id)
        conn.user_id = user_id
        return conn

    def leave_all(self, connection_id: str) -> set[str]:
        """Drop the connection from every room and delete its record.

        Returns the rooms it was in. Unknown ids are a no-op, so a
        disconnect racing a shutdown never raises.
        """
        conn = self._connections.pop(connection_id, None)
        if conn is None:
            return set()

        left = set(conn.rooms)
        for room in left:
            self._discard_member(room, connection_id)
        conn.rooms.clear()
        conn.closed = True
        return left

    def shutdown(self) -> int:
        """Drop every connection. Returns how many were registered."""
        count = len(self._connections)
        for connection_id in list(self._connections):
            self.leave_all(connection_id)
        return count

    # ─── Membership ───────────────────────────────────────

    def join_room(self, connection_id: str, room: str) -> bool:
        """Add the connection to a room. Returns False if already a member."""
        conn = self._require(connection_id)
        room = validate_room(room)
        if room in conn.rooms:
            return False
        if len(conn.rooms) >= self.max_rooms_per_connection:
            raise RoomLimitExceeded(
                f"Connection {connection_id} is already in "
                f"{self.max_rooms_per_connection} rooms"
            )
        conn.rooms.add(room)
        self._rooms.setdefault(room, set()).add(connection_id)
        return True

    def leave_room(self, connection_id: str, room: str) -> bool:
        """Remove one membership. Returns False if the connection wasn't in it."""
        conn = self._require(connection_id)
        if room not in conn.rooms:
            return False
        conn.rooms.discard(room)
        self._discard_member(room, connection_id)
        return True

    # ─── Lookup ───────────────────────────────────────────

    def get(self, connection_id: str) -> Optional[Connection]:
        return self._connections.get(connection_id)

    def members(self, room: str) -> list[Connection]:
        """Snapshot of the connections currently in a room."""
        return [self._connections[cid] for cid in self._rooms.get(room, ())]

    def rooms_of(self, connection_id: str) -> set[str]:
        return set(self._require(connection_id).rooms)

    def room_count(self) -> int:
        return len(self._rooms)

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._connections

    def __iter__(self) -> Iterator[Connection]:
        return iter(list(self._connections.values()))

    # ─── Internals ────────────────────────────────────────

    def _require(self, connection_id: str) -> Connection:
        conn = self._connections.get(connection_id)
        if conn is None:
            raise UnknownConnection(connection_id)
        return conn

    def _discard_member(self, room: str, connection_id: str) -> None:
        members = self._rooms.get(room)
        if members is None:
            return
        members.discard(connection_id)
        if not members:
            del self._rooms[room]

"""Realtime error taxonomy.

None of these are fatal: handlers log them and keep the connection open.
"""


class RealtimeError(Exception):
    """Base class for realtime fan-out errors."""


class AuthorizationDenied(RealtimeError):
    """Raised when a user acts on a room it is not a participant of."""


class PersistenceFailure(RealtimeError):
    """Raised when a storage write fails before a broadcast."""


class BridgeUnavailable(RealtimeError):
    """Raised when the pub/sub broker cannot be reached."""


class MalformedRemoteEvent(RealtimeError):
    """Raised when a frame received from the broker cannot be decoded."""


class RoomLimitExceeded(RealtimeError):
    """Raised when a connection tries to join more rooms than allowed."""


class UnknownConnection(RealtimeError, KeyError):
    """Raised when a connection id is not in the registry."""

"""Room naming — the fan-out keys connections join.

A room has no lifecycle of its own. It exists while the registry holds at
least one member under its key.

    {chatId}               direct, group or project chat
    document-{documentId}  collaborative editing session
    project-{projectId}    project task board
    user-{userId}          personal notification channel
    notifications          global broadcast channel
"""

from enum import Enum
from typing import Any

NOTIFICATIONS_ROOM = "notifications"

DOCUMENT_PREFIX = "document-"
PROJECT_PREFIX = "project-"
USER_PREFIX = "user-"

MAX_ROOM_LENGTH = 200


class RoomKind(str, Enum):
    CHAT = "chat"
    DOCUMENT = "document"
    PROJECT = "project"
    USER = "user"
    BROADCAST = "broadcast"


class InvalidRoom(ValueError):
    """Raised for empty or oversized room keys."""


def _key(value: Any) -> str:
    key = str(value).strip() if value is not None else ""
    if not key:
        raise InvalidRoom("Room id must not be empty")
    return key


def chat_room(chat_id: Any) -> str:
    return validate_room(_key(chat_id))


def document_room(document_id: Any) -> str:
    return validate_room(f"{DOCUMENT_PREFIX}{_key(document_id)}")


def project_room(project_id: Any) -> str:
    return validate_room(f"{PROJECT_PREFIX}{_key(project_id)}")


def user_room(user_id: Any) -> str:
    return validate_room(f"{USER_PREFIX}{_key(user_id)}")


def validate_room(room: str) -> str:
    """Return the room key unchanged, or raise InvalidRoom."""
    if not isinstance(room, str) or not room.strip():
        raise InvalidRoom("Room id must be a non-empty string")
    if len(room) > MAX_ROOM_LENGTH:
        raise InvalidRoom(f"Room id longer than {MAX_ROOM_LENGTH} characters")
    return room


def room_kind(room: str) -> RoomKind:
    if room == NOTIFICATIONS_ROOM:
        return RoomKind.BROADCAST
    if room.startswith(DOCUMENT_PREFIX):
        return RoomKind.DOCUMENT
    if room.startswith(PROJECT_PREFIX):
        return RoomKind.PROJECT
    if room.startswith(USER_PREFIX):
        return RoomKind.USER
    return RoomKind.CHAT

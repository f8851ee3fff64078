"""Pydantic schemas for inbound socket frames.

Learn: clients speak camelCase (userId, roomId). Each model accepts the
camelCase key and the snake_case field name, and coerces numeric ids to
strings so room keys are always text.

Frames look like {"type": "message", "data": {...}}; these models
validate the "data" half.
"""

from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from huddle.schemas.notification import NotificationFields


class SocketPayload(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
    )

    @field_validator("*", mode="after")
    @classmethod
    def _strip_ids(cls, value, info):
        if info.field_name.endswith("_id") and isinstance(value, str):
            value = value.strip()
            if not value:
                raise ValueError(f"{info.field_name} must not be empty")
        return value


class JoinPayload(SocketPayload):
    """join — bind identity and enter a room."""
    user_id: str
    room_id: str


class JoinNotificationsPayload(SocketPayload):
    """joinNotifications — enter user-{userId} and the global channel."""
    user_id: str


class LeavePayload(SocketPayload):
    """leave — exit one room."""
    room_id: str


class MessagePayload(SocketPayload):
    """message — persisted chat message."""
    model_config = ConfigDict(str_strip_whitespace=True)

    room_id: str
    user_id: str
    content: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("content", "message")
    )
    user_name: Optional[str] = None
    to: Optional[str] = None


class TypingPayload(SocketPayload):
    """typing — advisory indicator, never persisted."""
    room_id: str
    user_id: str
    user_name: Optional[str] = None
    is_typing: bool = True


class DocumentEditPayload(SocketPayload):
    """documentEdit — relayed as documentUpdate."""
    document_id: str
    user_id: str
    content: Any = None


class TaskUpdatePayload(SocketPayload):
    """taskUpdate — relayed as taskUpdated on the project board."""
    project_id: str
    user_id: str
    task: dict[str, Any] = Field(default_factory=dict)


class SendNotificationPayload(SocketPayload):
    """sendNotification — persisted, then delivered to user-{userId}."""
    user_id: str
    notification: NotificationFields

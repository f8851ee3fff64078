"""Pydantic schemas for notifications.

Learn: NotificationRead serializes by alias so the REST API and the
socket "notification" event share one camelCase shape:
{id, userId, type, title, message, data, isRead, link, createdAt, updatedAt}.
"""

import uuid
from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

NotificationType = Literal[
    "message", "task", "document", "project", "system", "project_invitation"
]


class NotificationFields(BaseModel):
    """The caller-supplied part of a notification."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    type: NotificationType = "system"
    message: str = Field(..., min_length=1)
    title: Optional[str] = None
    data: Optional[dict[str, Any]] = None
    link: Optional[str] = None


class NotificationCreate(NotificationFields):
    """POST /notifications — user_id defaults to the caller."""
    user_id: Optional[str] = Field(None, description="Recipient user UUID")


class NotificationRead(BaseModel):
    """A stored notification, as clients see it."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    id: uuid.UUID
    user_id: uuid.UUID
    type: str
    title: Optional[str]
    message: str
    data: Optional[dict[str, Any]]
    is_read: bool
    link: Optional[str]
    created_at: datetime
    updated_at: datetime

    def payload(self) -> dict[str, Any]:
        """JSON-safe camelCase dict for the socket event."""
        return self.model_dump(by_alias=True, mode="json")

"""Notification service — per-user notifications in the database.

Learn: notifications are written here first and only then pushed to the
user's socket room. If the write fails nothing is delivered, so a client
never sees a notification the REST API can't return.
"""

import uuid
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from huddle.db.models import Notification, utcnow


class NotificationNotFoundError(Exception):
    """Raised when a notification is missing or not owned by the user."""


class NotificationService:
    """CRUD for the notifications table, scoped to one recipient."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(
        self,
        user_id: str,
        *,
        message: str,
        type: str = "system",
        title: Optional[str] = None,
        data: Optional[dict[str, Any]] = None,
        link: Optional[str] = None,
    ) -> Notification:
        now = utcnow()
        notification = Notification(
            user_id=uuid.UUID(user_id),
            type=type,
            title=title,
            message=message,
            data=data,
            link=link,
            is_read=False,
            created_at=now,
            updated_at=now,
        )
        self.db.add(notification)
        await self.db.commit()
        await self.db.refresh(notification)
        return notification

    async def list_for_user(
        self,
        user_id: str,
        *,
        unread_only: bool = False,
        limit: int = 10,
    ) -> list[Notification]:
        """Newest first."""
        q = (
            select(Notification)
            .where(Notification.user_id == uuid.UUID(user_id))
            .order_by(Notification.created_at.desc())
            .limit(limit)
        )
        if unread_only:
            q = q.where(Notification.is_read.is_(False))
        result = await self.db.execute(q)
        return list(result.scalars().all())

    async def mark_read(self, user_id: str, notification_id: str) -> Notification:
        notification = await self._get_owned(user_id, notification_id)
        notification.is_read = True
        notification.updated_at = utcnow()
        await self.db.commit()
        await self.db.refresh(notification)
        return notification

    async def mark_all_read(self, user_id: str) -> int:
        """Returns how many notifications changed."""
        result = await self.db.execute(
            update(Notification)
            .where(
                Notification.user_id == uuid.UUID(user_id),
                Notification.is_read.is_(False),
            )
            .values(is_read=True, updated_at=utcnow())
        )
        await self.db.commit()
        return result.rowcount or 0

    async def delete(self, user_id: str, notification_id: str) -> None:
        notification = await self._get_owned(user_id, notification_id)
        await self.db.delete(notification)
        await self.db.commit()

    async def _get_owned(self, user_id: str, notification_id: str) -> Notification:
        try:
            key = uuid.UUID(notification_id)
        except ValueError:
            raise NotificationNotFoundError(f"Notification {notification_id} not found")

        notification = await self.db.get(Notification, key)
        if not notification or notification.user_id != uuid.UUID(user_id):
            raise NotificationNotFoundError(f"Notification {notification_id} not found")
        return notification

"""Storage collaborators the realtime handlers depend on.

Learn: handlers see only this Protocol. In production it's backed by
SQLAlchemy through DatabaseStorage, one short-lived session per call
(sockets are long-lived, database sessions must not be). Tests swap in
an in-memory fake.
"""

from typing import Any, Optional, Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from huddle.schemas.notification import NotificationFields, NotificationRead
from huddle.services.chat_service import ChatService
from huddle.services.notification_service import NotificationService


class RealtimeStorage(Protocol):
    async def is_chat_member(self, chat_id: str, user_id: str) -> bool: ...

    async def save_message(
        self,
        *,
        chat_id: str,
        sender_id: str,
        content: str,
        to: Optional[str] = None,
    ) -> dict[str, Any]:
        """Persist a chat message; return the outbound "message" payload."""
        ...

    async def save_notification(
        self, user_id: str, fields: NotificationFields
    ) -> dict[str, Any]:
        """Persist a notification; return the outbound "notification" payload."""
        ...


class DatabaseStorage:
    """RealtimeStorage over the application's SQLAlchemy session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def is_chat_member(self, chat_id: str, user_id: str) -> bool:
        async with self.session_factory() as db:
            return await ChatService(db).is_participant(chat_id, user_id)

    async def save_message(
        self,
        *,
        chat_id: str,
        sender_id: str,
        content: str,
        to: Optional[str] = None,
    ) -> dict[str, Any]:
        async with self.session_factory() as db:
            return await ChatService(db).save_message(
                chat_id=chat_id, sender_id=sender_id, content=content, to=to
            )

    async def save_notification(
        self, user_id: str, fields: NotificationFields
    ) -> dict[str, Any]:
        async with self.session_factory() as db:
            notification = await NotificationService(db).create(
                user_id,
                type=fields.type,
                title=fields.title,
                message=fields.message,
                data=fields.data,
                link=fields.link,
            )
            return NotificationRead.model_validate(notification).payload()

"""Chat service — membership checks and message persistence.

Learn: the realtime message handler calls this twice per message:
1. is_participant() to authorize the sender against the chat
2. save_message() to write the row before anything is broadcast

The returned dict is the exact payload clients receive in the
"message" event, so the broadcast always reflects the stored row.
"""

import uuid
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from huddle.db.models import Chat, ChatParticipant, Message, User, utcnow


class ChatNotFoundError(Exception):
    """Raised when a chat does not exist."""


def _as_uuid(value: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def serialize_message(message: Message, sender: Optional[User]) -> dict[str, Any]:
    """Message row → outbound "message" event payload."""
    return {
        "_id": str(message.id),
        "chat": str(message.chat_id),
        "sender": {
            "_id": str(message.sender_id),
            "firstName": sender.first_name if sender else None,
            "lastName": sender.last_name if sender else None,
            "email": sender.email if sender else None,
        },
        "content": message.content,
        "timestamp": message.timestamp.isoformat(),
        "readBy": list(message.read_by or []),
        "attachments": list(message.attachments or []),
    }


class ChatService:
    """Reads chat membership, writes chat messages."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def is_participant(self, chat_id: str, user_id: str) -> bool:
        """True if `user_id` is listed as a participant of `chat_id`.

        Ids that aren't UUIDs can't match any row, so they are simply
        not participants.
        """
        chat_uuid, user_uuid = _as_uuid(chat_id), _as_uuid(user_id)
        if chat_uuid is None or user_uuid is None:
            return False

        q = select(ChatParticipant.id).where(
            ChatParticipant.chat_id == chat_uuid,
            ChatParticipant.user_id == user_uuid,
        )
        result = await self.db.execute(q.limit(1))
        return result.first() is not None

    async def save_message(
        self,
        *,
        chat_id: str,
        sender_id: str,
        content: str,
        to: Optional[str] = None,
    ) -> dict[str, Any]:
        """Persist a message and bump the chat's updated_at.

        Returns the populated "message" payload.
        """
        chat = await self.db.get(Chat, uuid.UUID(chat_id))
        if not chat:
            raise ChatNotFoundError(f"Chat {chat_id} not found")

        message = Message(
            chat_id=chat.id,
            sender_id=uuid.UUID(sender_id),
            to_id=uuid.UUID(to) if to else None,
            content=content.strip(),
            timestamp=utcnow(),
            read_by=[],
            attachments=[],
        )
        self.db.add(message)
        chat.updated_at = utcnow()

        await self.db.commit()
        await self.db.refresh(message)

        sender = await self.db.get(User, message.sender_id)
        return serialize_message(message, sender)

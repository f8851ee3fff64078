"""Socket event handlers — what each inbound frame does.

Learn: a connection moves Connected → (join) → in one or more rooms →
(leave / disconnect) → gone. Only state-changing events are checked and
persisted:

    join              no auth check; join is advisory
    message           chat membership checked, persisted, then broadcast
    sendNotification  persisted, then delivered to user-{userId}
    typing / documentEdit / taskUpdate   broadcast only

A handler failure is logged and the frame dropped. The socket stays open
and there is no retry.
"""

from enum import Enum
from typing import Any, Awaitable, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from huddle.realtime.errors import (
    AuthorizationDenied,
    PersistenceFailure,
    RealtimeError,
)
from huddle.realtime.events import Event, EventType, utcnow
from huddle.realtime.registry import Connection
from huddle.realtime.result import Result
from huddle.realtime.rooms import NOTIFICATIONS_ROOM, InvalidRoom, user_room
from huddle.realtime.service import RealtimeService
from huddle.realtime.storage import RealtimeStorage
from huddle.schemas.notification import NotificationFields
from huddle.schemas.socket import (
    DocumentEditPayload,
    JoinNotificationsPayload,
    JoinPayload,
    LeavePayload,
    MessagePayload,
    SendNotificationPayload,
    TaskUpdatePayload,
    TypingPayload,
)

logger = structlog.get_logger()

T = TypeVar("T")


class InboundType(str, Enum):
    JOIN = "join"
    JOIN_NOTIFICATIONS = "joinNotifications"
    LEAVE = "leave"
    MESSAGE = "message"
    TYPING = "typing"
    DOCUMENT_EDIT = "documentEdit"
    TASK_UPDATE = "taskUpdate"
    SEND_NOTIFICATION = "sendNotification"


class EventHandlers:
    def __init__(self, service: RealtimeService, storage: RealtimeStorage):
        self.service = service
        self.storage = storage

    @property
    def registry(self):
        return self.service.registry

    # ─── Entry point ──────────────────────────────────────

    async def handle(self, conn: Connection, frame_type: str, data: Any) -> bool:
        """Validate and run one inbound frame. Never raises.

        Returns True when the handler ran to completion.
        """
        try:
            inbound = InboundType(frame_type)
        except ValueError:
            logger.warning("ws.unknown_event", event_type=frame_type)
            return False

        try:
            match inbound:
                case InboundType.JOIN:
                    await self.join(conn, _parse(JoinPayload, data))
                case InboundType.JOIN_NOTIFICATIONS:
                    await self.join_notifications(
                        conn, _parse(JoinNotificationsPayload, data)
                    )
                case InboundType.LEAVE:
                    await self.leave(conn, _parse(LeavePayload, data))
                case InboundType.MESSAGE:
                    await self.message(conn, _parse(MessagePayload, data))
                case InboundType.TYPING:
                    await self.typing(conn, _parse(TypingPayload, data))
                case InboundType.DOCUMENT_EDIT:
                    await self.document_edit(conn, _parse(DocumentEditPayload, data))
                case InboundType.TASK_UPDATE:
                    await self.task_update(conn, _parse(TaskUpdatePayload, data))
                case InboundType.SEND_NOTIFICATION:
                    await self.send_notification(
                        conn, _parse(SendNotificationPayload, data)
                    )
            return True
        except ValidationError as e:
            logger.warning(
                "ws.invalid_payload",
                event_type=inbound.value,
                errors=e.errors(include_url=False),
            )
        except AuthorizationDenied as e:
            logger.warning("ws.unauthorized", event_type=inbound.value, error=str(e))
        except (RealtimeError, InvalidRoom) as e:
            logger.warning("ws.event_rejected", event_type=inbound.value, error=str(e))
        except Exception:
            logger.exception("ws.handler_failed", event_type=inbound.value)
        return False

    # ─── Membership ───────────────────────────────────────

    async def join(self, conn: Connection, p: JoinPayload) -> None:
        self.registry.join_room(conn.id, p.room_id)
        self._identify(conn, p.user_id)
        logger.info("ws.joined", user_id=p.user_id, room=p.room_id)

        self.service.emit(
            Event(EventType.USER_JOINED, {"userId": p.user_id, "roomId": p.room_id}),
            exclude=conn.id,
        )

    async def join_notifications(
        self, conn: Connection, p: JoinNotificationsPayload
    ) -> None:
        self.registry.join_room(conn.id, user_room(p.user_id))
        self.registry.join_room(conn.id, NOTIFICATIONS_ROOM)
        self._identify(conn, p.user_id)
        logger.info("ws.joined_notifications", user_id=p.user_id)

    async def leave(self, conn: Connection, p: LeavePayload) -> None:
        if self.registry.leave_room(conn.id, p.room_id):
            logger.info("ws.left", user_id=conn.user_id, room=p.room_id)

    async def disconnect(self, conn: Connection) -> None:
        rooms = self.registry.leave_all(conn.id)
        logger.info("ws.disconnected", user_id=conn.user_id, rooms=len(rooms))
        self.service.emit(
            Event(EventType.USER_DISCONNECTED, {"userId": conn.user_id})
        )

    # ─── Chat ─────────────────────────────────────────────

    async def message(self, conn: Connection, p: MessagePayload) -> None:
        if not await self.storage.is_chat_member(p.room_id, p.user_id):
            raise AuthorizationDenied(
                f"User {p.user_id} is not a participant of {p.room_id}"
            )

        saved = await _persist(
            self.storage.save_message(
                chat_id=p.room_id, sender_id=p.user_id, content=p.content, to=p.to
            )
        )
        if not saved.ok:
            logger.error(
                "ws.message_not_saved",
                user_id=p.user_id,
                room=p.room_id,
                error=str(saved.error),
            )
            return

        payload = {**saved.value, "roomId": p.room_id}
        delivered = self.service.emit(
            Event(EventType.MESSAGE, payload), exclude=conn.id
        )
        logger.info(
            "ws.message_sent",
            room=p.room_id,
            message_id=payload.get("_id"),
            recipients=delivered,
        )

    async def typing(self, conn: Connection, p: TypingPayload) -> None:
        self.service.emit(
            Event(EventType.TYPING, {
                "userId": p.user_id,
                "userName": p.user_name,
                "roomId": p.room_id,
                "isTyping": p.is_typing,
            }),
            exclude=conn.id,
        )

    # ─── Documents & tasks ────────────────────────────────

    async def document_edit(self, conn: Connection, p: DocumentEditPayload) -> None:
        self.service.emit(
            Event(EventType.DOCUMENT_UPDATE, {
                "documentId": p.document_id,
                "content": p.content,
                "userId": p.user_id,
                "timestamp": utcnow(),
            }),
            exclude=conn.id,
        )

    async def task_update(self, conn: Connection, p: TaskUpdatePayload) -> None:
        self.service.emit(
            Event(EventType.TASK_UPDATED, {
                "projectId": p.project_id,
                "task": p.task,
                "userId": p.user_id,
                "timestamp": utcnow(),
            }),
            exclude=conn.id,
        )

    # ─── Notifications ────────────────────────────────────

    async def send_notification(
        self, conn: Connection, p: SendNotificationPayload
    ) -> None:
        await self.notify(p.user_id, p.notification)

    async def notify(self, user_id: str, fields: NotificationFields) -> int:
        """Persist a notification, then deliver it. Returns local deliveries."""
        saved = await _persist(self.storage.save_notification(user_id, fields))
        if not saved.ok:
            logger.error(
                "ws.notification_not_saved", user_id=user_id, error=str(saved.error)
            )
            return 0

        delivered = self.service.deliver_notification(saved.value)
        logger.info(
            "ws.notification_sent",
            user_id=user_id,
            notification_id=saved.value.get("id"),
            recipients=delivered,
        )
        return delivered

    # ─── Internals ────────────────────────────────────────

    def _identify(self, conn: Connection, user_id: str) -> None:
        if conn.token_subject and conn.token_subject != user_id:
            logger.warning(
                "ws.identity_mismatch",
                declared_user_id=user_id,
                token_subject=conn.token_subject,
            )
        self.registry.identify(conn.id, user_id)


def _parse(model: type[BaseModel], data: Any) -> Any:
    return model.model_validate(data if data is not None else {})


async def _persist(write: Awaitable[T]) -> Result[T]:
    try:
        return Result.success(await write)
    except Exception as e:
        return Result.failure(PersistenceFailure(str(e)))

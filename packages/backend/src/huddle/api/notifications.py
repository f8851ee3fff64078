"""Notifications API — the REST side of per-user notifications.

Learn: creating a notification over HTTP goes through the same fan-out as
the socket's sendNotification event: write the row, then hand the stored
payload to the realtime service so the recipient's open sockets (on any
instance) get it immediately.

- GET    /notifications               → caller's notifications
- POST   /notifications               → create + deliver
- PUT    /notifications/read-all      → mark all read
- PUT    /notifications/:id/read      → mark one read
- DELETE /notifications/:id           → delete one
"""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from huddle.auth.dependencies import CurrentIdentity, get_current_user
from huddle.db.engine import get_db
from huddle.realtime.service import RealtimeService
from huddle.schemas.notification import NotificationCreate, NotificationRead
from huddle.services.notification_service import (
    NotificationNotFoundError,
    NotificationService,
)

router = APIRouter()


def _get_service(db: AsyncSession = Depends(get_db)) -> NotificationService:
    return NotificationService(db)


def _get_realtime(request: Request) -> RealtimeService:
    return request.app.state.realtime


def _require_uuid(value: str, field: str) -> str:
    try:
        return str(uuid.UUID(value))
    except ValueError:
        raise HTTPException(status_code=422, detail=f"{field} must be a UUID")


@router.get("/notifications", response_model=list[NotificationRead])
async def list_notifications(
    limit: int = Query(10, ge=1, le=100),
    unread_only: bool = Query(False, alias="unreadOnly"),
    user: CurrentIdentity = Depends(get_current_user),
    svc: NotificationService = Depends(_get_service),
):
    """List the caller's notifications, newest first."""
    user_id = _require_uuid(user.user_id, "user id")
    return await svc.list_for_user(user_id, unread_only=unread_only, limit=limit)


@router.post("/notifications", response_model=NotificationRead, status_code=201)
async def create_notification(
    body: NotificationCreate,
    user: CurrentIdentity = Depends(get_current_user),
    svc: NotificationService = Depends(_get_service),
    realtime: RealtimeService = Depends(_get_realtime),
):
    """Create a notification and push it to the recipient's sockets."""
    recipient = _require_uuid(body.user_id or user.user_id, "userId")
    notification = await svc.create(
        recipient,
        type=body.type,
        title=body.title,
        message=body.message,
        data=body.data,
        link=body.link,
    )
    read = NotificationRead.model_validate(notification)
    realtime.deliver_notification(read.payload())
    return read


@router.put("/notifications/read-all")
async def mark_all_read(
    user: CurrentIdentity = Depends(get_current_user),
    svc: NotificationService = Depends(_get_service),
):
    """Mark every unread notification of the caller as read."""
    user_id = _require_uuid(user.user_id, "user id")
    return {"updated": await svc.mark_all_read(user_id)}


@router.put("/notifications/{notification_id}/read", response_model=NotificationRead)
async def mark_read(
    notification_id: str,
    user: CurrentIdentity = Depends(get_current_user),
    svc: NotificationService = Depends(_get_service),
):
    """Mark one of the caller's notifications as read."""
    try:
        return await svc.mark_read(_require_uuid(user.user_id, "user id"), notification_id)
    except NotificationNotFoundError:
        raise HTTPException(status_code=404, detail="Notification not found")


@router.delete("/notifications/{notification_id}", status_code=204)
async def delete_notification(
    notification_id: str,
    user: CurrentIdentity = Depends(get_current_user),
    svc: NotificationService = Depends(_get_service),
):
    """Delete one of the caller's notifications."""
    try:
        await svc.delete(_require_uuid(user.user_id, "user id"), notification_id)
    except NotificationNotFoundError:
        raise HTTPException(status_code=404, detail="Notification not found")

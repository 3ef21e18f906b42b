"""Notification inbox routes."""
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from groupcal import notifications
from groupcal.core.auth import get_current_user
from groupcal.core.database import get_session
from groupcal.models import NotificationStatus, User
from groupcal.schemas import serialize_notification

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("")
async def list_notifications(
    status: list[NotificationStatus] | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """The caller's unread and read notifications, newest first."""
    items = notifications.list_for_user(session, user.id, status, limit, offset)
    return {
        "success": True,
        "notifications": [serialize_notification(item) for item in items],
        "unread_count": notifications.unread_count(session, user.id),
    }


@router.get("/unread-count")
async def unread_count(
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    return {"success": True, "count": notifications.unread_count(session, user.id)}


@router.put("/read-all")
async def mark_all_read(
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    count = notifications.mark_all_read(session, user.id)
    return {"success": True, "updated": count}


@router.put("/{notification_id}/read")
async def mark_read(
    notification_id: UUID,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    notification = notifications.mark_read(session, user.id, notification_id)
    return {"success": True, "notification": serialize_notification(notification)}


@router.delete("/{notification_id}")
async def archive_notification(
    notification_id: UUID,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    notification = notifications.archive(session, user.id, notification_id)
    return {"success": True, "notification": serialize_notification(notification)}

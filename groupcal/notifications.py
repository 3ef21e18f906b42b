"""In-app notifications: fan-out after state transitions, and the inbox.

Notifications are best-effort. Callers commit the transition that
triggered them first and then call :func:`dispatch`; a failure here is
rolled back and logged, never raised, so it cannot undo an approval or
an accepted invitation.
"""
import logging
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from groupcal import repository
from groupcal.core.clock import utcnow
from groupcal.core.errors import NotFoundError
from groupcal.models import Notification, NotificationStatus, NotificationType

logger = logging.getLogger(__name__)


def build(
    recipient_id: UUID,
    sender_id: UUID,
    kind: NotificationType,
    title: str,
    message: str = "",
    **data,
) -> Notification:
    """Create an unsaved notification; ``data`` values are stored as strings."""
    return Notification(
        recipient_id=recipient_id,
        sender_id=sender_id,
        type=kind,
        title=title[:100],
        message=message[:500],
        data={key: str(value) for key, value in data.items() if value is not None},
    )


def dispatch(session: Session, notifications: list[Notification]) -> int:
    """Persist ``notifications`` in one batch. Returns the number written."""
    if not notifications:
        return 0
    try:
        session.add_all(notifications)
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Failed to store {len(notifications)} notifications: {e}")
        return 0
    logger.debug(f"Stored {len(notifications)} notifications")
    return len(notifications)


def notify_group_members(
    session: Session,
    group_id: UUID,
    sender_id: UUID,
    kind: NotificationType,
    title: str,
    message: str = "",
    **data,
) -> int:
    """Notify every active member of a group except ``sender_id``."""
    try:
        members = repository.list_active_members(session, group_id)
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Failed to load members of group {group_id} for notification: {e}")
        return 0
    notifications = [
        build(member.user_id, sender_id, kind, title, message, group_id=group_id, **data)
        for member in members
        if member.user_id != sender_id
    ]
    return dispatch(session, notifications)


def _archive_if_expired(notification: Notification) -> bool:
    if notification.is_expired and notification.status != NotificationStatus.ARCHIVED:
        notification.status = NotificationStatus.ARCHIVED
        return True
    return False


def list_for_user(
    session: Session,
    user_id: UUID,
    statuses: list[NotificationStatus] | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Notification]:
    """Return the user's notifications, newest first.

    Expired notifications found on the way are archived and left out.
    """
    statuses = statuses or [NotificationStatus.UNREAD, NotificationStatus.READ]
    statement = (
        select(Notification)
        .where(Notification.recipient_id == user_id)
        .where(Notification.status.in_(statuses))
        .order_by(Notification.created_at.desc())
        .offset(offset)
        .limit(limit)
    )
    notifications = session.exec(statement).all()

    visible = []
    archived = 0
    for notification in notifications:
        if _archive_if_expired(notification):
            session.add(notification)
            archived += 1
            if NotificationStatus.ARCHIVED not in statuses:
                continue
        visible.append(notification)
    if archived:
        session.commit()
    return visible


def unread_count(session: Session, user_id: UUID) -> int:
    statement = (
        select(func.count())
        .select_from(Notification)
        .where(Notification.recipient_id == user_id)
        .where(Notification.status == NotificationStatus.UNREAD)
        .where(Notification.expires_at > utcnow())
    )
    return session.exec(statement).one()


def _get_own(session: Session, user_id: UUID, notification_id: UUID) -> Notification:
    notification = session.get(Notification, notification_id)
    if notification is None or notification.recipient_id != user_id:
        raise NotFoundError("Notification not found")
    return notification


def mark_read(session: Session, user_id: UUID, notification_id: UUID) -> Notification:
    notification = _get_own(session, user_id, notification_id)
    if notification.status == NotificationStatus.UNREAD:
        notification.status = NotificationStatus.READ
        notification.read_at = utcnow()
        session.add(notification)
        session.commit()
    return notification


def mark_all_read(session: Session, user_id: UUID) -> int:
    statement = (
        select(Notification)
        .where(Notification.recipient_id == user_id)
        .where(Notification.status == NotificationStatus.UNREAD)
    )
    now = utcnow()
    count = 0
    for notification in session.exec(statement).all():
        notification.status = NotificationStatus.READ
        notification.read_at = now
        session.add(notification)
        count += 1
    session.commit()
    return count


def archive(session: Session, user_id: UUID, notification_id: UUID) -> Notification:
    notification = _get_own(session, user_id, notification_id)
    notification.status = NotificationStatus.ARCHIVED
    session.add(notification)
    session.commit()
    return notification


def archive_expired(session: Session) -> int:
    """Archive every expired notification that is not archived yet."""
    statement = (
        select(Notification)
        .where(Notification.status != NotificationStatus.ARCHIVED)
        .where(Notification.expires_at < utcnow())
    )
    count = 0
    for notification in session.exec(statement).all():
        notification.status = NotificationStatus.ARCHIVED
        session.add(notification)
        count += 1
    session.commit()
    return count

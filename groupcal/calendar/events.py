"""Personal event operations: create, read, edit, delete and share."""
import calendar
import logging
from datetime import datetime, timedelta
from uuid import UUID

from sqlmodel import Session, select

from groupcal import repository
from groupcal.calendar.visibility import can_user_view
from groupcal.core.clock import utcnow
from groupcal.core.errors import ForbiddenError, NotFoundError, ValidationError
from groupcal.groups.permissions import Capability, check_user_permission
from groupcal.models import Event, EventShare, Privacy, User
from groupcal.schemas import EventCreate, EventUpdate, ShareIn

logger = logging.getLogger(__name__)


def month_range(year: int, month: int) -> tuple[datetime, datetime]:
    """First and last moment of a calendar month."""
    if not 1 <= month <= 12:
        raise ValidationError("month must be between 1 and 12")
    last_day = calendar.monthrange(year, month)[1]
    start = datetime(year, month, 1)
    end = datetime(year, month, last_day) + timedelta(days=1) - timedelta(microseconds=1)
    return start, end


def list_shares(session: Session, event_id: UUID) -> list[EventShare]:
    return list(session.exec(select(EventShare).where(EventShare.event_id == event_id)).all())


def _get_share(session: Session, event_id: UUID, user_id: UUID) -> EventShare | None:
    statement = (
        select(EventShare)
        .where(EventShare.event_id == event_id)
        .where(EventShare.user_id == user_id)
    )
    return session.exec(statement).first()


def _group_allows(session: Session, event: Event, user_id: UUID, action: Capability) -> bool:
    if event.group_id is None:
        return False
    group = repository.get_active_group(session, event.group_id)
    return group is not None and check_user_permission(session, group, user_id, action)


def can_edit(session: Session, event: Event, user_id: UUID) -> bool:
    if event.creator_id == user_id:
        return True
    share = _get_share(session, event.id, user_id)
    if share is not None and share.can_edit:
        return True
    return _group_allows(session, event, user_id, Capability.EDIT_EVENT)


def can_delete(session: Session, event: Event, user_id: UUID) -> bool:
    if event.creator_id == user_id:
        return True
    return _group_allows(session, event, user_id, Capability.DELETE_EVENT)


def get_visible_event(session: Session, event_id: UUID, user_id: UUID) -> Event:
    """Load an event the user may read; anything else looks absent."""
    event = repository.find_active_event(session, event_id)
    if event is None or not can_user_view(session, event, user_id):
        raise NotFoundError("Event not found")
    return event


def check_share_target(session: Session, creator_id: UUID, user_id: UUID) -> None:
    if user_id == creator_id:
        raise ValidationError("An event cannot be shared with its creator")
    if session.get(User, user_id) is None:
        raise NotFoundError(f"User {user_id} not found")


def add_share(session: Session, event: Event, share: ShareIn) -> EventShare:
    check_share_target(session, event.creator_id, share.user_id)
    existing = _get_share(session, event.id, share.user_id)
    row = existing or EventShare(event_id=event.id, user_id=share.user_id)
    row.can_view = True
    row.can_comment = share.can_comment
    row.can_edit = share.can_edit
    session.add(row)
    return row


def create_event(session: Session, user: User, payload: EventCreate) -> Event:
    for share in payload.shared_with:
        check_share_target(session, user.id, share.user_id)

    event = Event(
        title=payload.title,
        description=payload.description,
        start_date=payload.start_date,
        end_date=payload.end_date,
        is_all_day=payload.is_all_day,
        color=payload.color,
        category=payload.category,
        location=payload.location,
        creator_id=user.id,
        privacy=payload.privacy,
    )
    event.set_recurrence(payload.recurrence.to_rule())
    session.add(event)
    session.flush()
    for share in payload.shared_with:
        add_share(session, event, share)

    session.commit()
    session.refresh(event)
    logger.info(f"User {user.id} created event {event.id} ({event.privacy.value})")
    return event


def update_event(session: Session, event_id: UUID, user: User, payload: EventUpdate) -> Event:
    """Apply a partial update.

    Raises:
        NotFoundError: the event does not exist or is hidden from the user.
        ForbiddenError: the user may read but not edit the event.
        ValidationError: the merged dates are inverted, or a personal
            event is given group-only privacy.
    """
    event = get_visible_event(session, event_id, user.id)
    if not can_edit(session, event, user.id):
        raise ForbiddenError("You do not have permission to edit this event")

    changes = payload.model_dump(exclude_unset=True, exclude={"recurrence"})
    start = changes.get("start_date") or event.start_date
    end = changes.get("end_date") or event.end_date
    if end < start:
        raise ValidationError("end_date must not be earlier than start_date")
    if changes.get("privacy") == Privacy.GROUP_ONLY and event.group_id is None:
        raise ValidationError("group_only privacy is only available for group events")
    if "title" in changes and not (changes["title"] or "").strip():
        raise ValidationError("title must not be blank")

    for field, value in changes.items():
        if value is None and field in {"title", "start_date", "end_date", "is_all_day", "privacy"}:
            continue
        setattr(event, field, value.strip() if field == "title" else value)
    if payload.recurrence is not None:
        event.set_recurrence(payload.recurrence.to_rule())
    event.updated_at = utcnow()

    session.add(event)
    session.commit()
    session.refresh(event)
    logger.info(f"User {user.id} updated event {event.id}")
    return event


def delete_event(session: Session, event_id: UUID, user: User) -> None:
    """Soft-delete an event."""
    event = get_visible_event(session, event_id, user.id)
    if not can_delete(session, event, user.id):
        raise ForbiddenError("You do not have permission to delete this event")
    event.is_deleted = True
    event.updated_at = utcnow()
    session.add(event)
    session.commit()
    logger.info(f"User {user.id} deleted event {event.id}")


def share_event(session: Session, event_id: UUID, user: User, share: ShareIn) -> list[EventShare]:
    event = repository.find_active_event(session, event_id)
    if event is None:
        raise NotFoundError("Event not found")
    if event.creator_id != user.id:
        raise ForbiddenError("Only the creator can share this event")

    add_share(session, event, share)
    event.updated_at = utcnow()
    session.add(event)
    session.commit()
    logger.info(f"Event {event.id} shared with {share.user_id}")
    return list_shares(session, event.id)


def unshare_event(session: Session, event_id: UUID, user: User, target_id: UUID) -> list[EventShare]:
    event = repository.find_active_event(session, event_id)
    if event is None:
        raise NotFoundError("Event not found")
    if event.creator_id != user.id:
        raise ForbiddenError("Only the creator can change sharing for this event")

    share = _get_share(session, event.id, target_id)
    if share is None:
        raise NotFoundError("Event is not shared with this user")
    session.delete(share)
    session.commit()
    logger.info(f"Event {event.id} no longer shared with {target_id}")
    return list_shares(session, event.id)

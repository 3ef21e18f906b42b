"""Which events a user may read.

An event is visible to a user when any of these holds:

    - **owned**: the user created it.
    - **shared**: the event has a share row for the user.
    - **group**: it belongs to an active group in which the user holds an
      active membership, and its approval status is ``approved``.
    - **public**: its privacy is ``public`` and it is approved (pending
      group events stay hidden even when marked public).

Soft-deleted events are never visible. Each source is queried on its own,
the results are merged by id, recurring events are expanded over the same
range and the whole set is sorted by start.
"""
import logging
from collections.abc import Iterable
from datetime import datetime
from uuid import UUID

from sqlalchemy import and_, or_
from sqlmodel import Session, select

from groupcal import repository
from groupcal.calendar.recurrence import Occurrence, RecurrenceType, generate_occurrences
from groupcal.models import ApprovalStatus, Event, EventShare, Privacy

logger = logging.getLogger(__name__)


def range_condition(range_start: datetime, range_end: datetime):
    """Events overlapping the range, plus recurring events that start before its end.

    A recurring base far before the range can still repeat into it, so
    its own dates are not a filter.
    """
    overlaps = and_(Event.start_date <= range_end, Event.end_date >= range_start)
    may_repeat_into = and_(
        Event.recurrence_type != RecurrenceType.NONE,
        Event.start_date <= range_end,
    )
    return or_(overlaps, may_repeat_into)


def expand_in_range(
    events: Iterable[Event], range_start: datetime, range_end: datetime
) -> list[Event | Occurrence]:
    """Base events overlapping the range plus their in-range repeats, sorted by start.

    Base events sort before occurrences starting at the same moment.
    """
    results: list[Event | Occurrence] = []
    for event in events:
        if event.start_date <= range_end and event.end_date >= range_start:
            results.append(event)
        rule = event.recurrence
        if rule.is_recurring:
            results.extend(generate_occurrences(event, rule, range_start, range_end))
    results.sort(key=lambda item: (item.start_date, isinstance(item, Occurrence)))
    return results


def _source_conditions(session: Session, user_id: UUID) -> dict:
    conditions = {
        "owned": Event.creator_id == user_id,
        "shared": Event.id.in_(
            select(EventShare.event_id).where(EventShare.user_id == user_id)
        ),
        "public": and_(
            Event.privacy == Privacy.PUBLIC,
            Event.approval_status == ApprovalStatus.APPROVED,
        ),
    }
    group_ids = repository.active_group_ids_for_user(session, user_id)
    if group_ids:
        conditions["group"] = and_(
            Event.group_id.in_(group_ids),
            Event.approval_status == ApprovalStatus.APPROVED,
        )
    return conditions


def _collect(
    session: Session, user_id: UUID, range_start: datetime, range_end: datetime
) -> dict[UUID, Event]:
    collected: dict[UUID, Event] = {}
    in_window = range_condition(range_start, range_end)
    for source, condition in _source_conditions(session, user_id).items():
        statement = (
            select(Event)
            .where(Event.is_deleted == False)  # noqa: E712
            .where(condition)
            .where(in_window)
        )
        events = session.exec(statement).all()
        added = 0
        for event in events:
            if event.id not in collected:
                collected[event.id] = event
                added += 1
        logger.debug(f"Visibility source '{source}' for {user_id}: {len(events)} found, {added} new")
    return collected


def get_user_visible_events(
    session: Session,
    user_id: UUID,
    range_start: datetime,
    range_end: datetime,
) -> list[Event | Occurrence]:
    """Return every event and occurrence ``user_id`` may see in a range.

    Base events appear only when their own dates overlap the range; the
    repeats of recurring events are added even when the base lies outside
    it. Results are sorted by start, base events before occurrences that
    start at the same moment.
    """
    collected = _collect(session, user_id, range_start, range_end)
    results = expand_in_range(collected.values(), range_start, range_end)
    logger.info(
        f"Resolved {len(results)} visible items ({len(collected)} base events) "
        f"for user {user_id} between {range_start.isoformat()} and {range_end.isoformat()}"
    )
    return results


def can_user_view(session: Session, event: Event, user_id: UUID) -> bool:
    """Single-event form of the visibility rules."""
    if event.is_deleted:
        return False
    if event.creator_id == user_id:
        return True
    share = session.exec(
        select(EventShare)
        .where(EventShare.event_id == event.id)
        .where(EventShare.user_id == user_id)
    ).first()
    if share is not None:
        return True
    if event.approval_status != ApprovalStatus.APPROVED:
        return False
    if event.privacy == Privacy.PUBLIC:
        return True
    if event.group_id is not None:
        group = repository.get_active_group(session, event.group_id)
        if group is not None and repository.get_active_membership(session, group.id, user_id):
            return True
    return False

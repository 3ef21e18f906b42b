"""Event routes: the caller's calendar and personal event management."""
from datetime import date, datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session

from groupcal.calendar import events as event_service
from groupcal.calendar.recurrence import is_date_in_recurrence
from groupcal.calendar.visibility import get_user_visible_events
from groupcal.core.auth import get_current_user
from groupcal.core.clock import to_naive, utcnow
from groupcal.core.database import get_session
from groupcal.core.errors import ValidationError
from groupcal.models import User
from groupcal.schemas import EventCreate, EventUpdate, ShareIn, serialize_event

router = APIRouter(prefix="/events", tags=["events"])


@router.get("")
async def list_events(
    year: int | None = Query(default=None, ge=1, le=9999),
    month: int | None = Query(default=None, ge=1, le=12),
    start_date: datetime | None = Query(default=None, alias="startDate"),
    end_date: datetime | None = Query(default=None, alias="endDate"),
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """
    List every event the caller may see in a date range.

    The range is either a calendar month (``year`` and ``month``) or an
    explicit ``startDate``/``endDate`` pair; with neither, the current
    month is used. Recurring events are expanded into their occurrences.
    """
    if start_date is not None or end_date is not None:
        if start_date is None or end_date is None:
            raise ValidationError("startDate and endDate must be given together")
        range_start, range_end = to_naive(start_date), to_naive(end_date)
        if range_end < range_start:
            raise ValidationError("endDate must not be earlier than startDate")
    elif year is not None or month is not None:
        if year is None or month is None:
            raise ValidationError("year and month must be given together")
        range_start, range_end = event_service.month_range(year, month)
    else:
        today = utcnow()
        range_start, range_end = event_service.month_range(today.year, today.month)

    items = get_user_visible_events(session, user.id, range_start, range_end)
    return {
        "success": True,
        "events": [serialize_event(item) for item in items],
        "range": {"start": range_start.isoformat(), "end": range_end.isoformat()},
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_event(
    payload: EventCreate,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """Create a personal event, optionally shared with other users."""
    event = event_service.create_event(session, user, payload)
    shares = event_service.list_shares(session, event.id)
    return {"success": True, "event": serialize_event(event, shares)}


@router.get("/{event_id}")
async def get_event(
    event_id: UUID,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    event = event_service.get_visible_event(session, event_id, user.id)
    shares = event_service.list_shares(session, event.id)
    return {"success": True, "event": serialize_event(event, shares)}


@router.get("/{event_id}/occurs-on")
async def occurs_on(
    event_id: UUID,
    day: date = Query(alias="date"),
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """Whether the event (or one of its repeats) starts on a given day."""
    event = event_service.get_visible_event(session, event_id, user.id)
    occurs = event.start_date.date() == day or is_date_in_recurrence(day, event, event.recurrence)
    return {"success": True, "date": day.isoformat(), "occurs": occurs}


@router.put("/{event_id}")
async def update_event(
    event_id: UUID,
    payload: EventUpdate,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    event = event_service.update_event(session, event_id, user, payload)
    shares = event_service.list_shares(session, event.id)
    return {"success": True, "event": serialize_event(event, shares)}


@router.delete("/{event_id}")
async def delete_event(
    event_id: UUID,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    event_service.delete_event(session, event_id, user)
    return {"success": True, "message": "Event deleted"}


@router.post("/{event_id}/share")
async def share_event(
    event_id: UUID,
    payload: ShareIn,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    shares = event_service.share_event(session, event_id, user, payload)
    event = event_service.get_visible_event(session, event_id, user.id)
    return {"success": True, "event": serialize_event(event, shares)}


@router.delete("/{event_id}/share/{user_id}")
async def unshare_event(
    event_id: UUID,
    user_id: UUID,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    shares = event_service.unshare_event(session, event_id, user, user_id)
    event = event_service.get_visible_event(session, event_id, user.id)
    return {"success": True, "event": serialize_event(event, shares)}

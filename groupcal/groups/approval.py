"""Moderation of group events.

A group event starts ``approved`` unless its group requires review, in
which case it starts ``pending`` and stays invisible to everyone but its
creator and the group's reviewers. A reviewer (any member whose role
grants ``edit_event``) moves it once to ``approved`` or ``rejected``;
both are terminal. Rejection also cancels the event.
"""
import logging
from enum import Enum
from uuid import UUID

from sqlmodel import Session

from groupcal import notifications, repository
from groupcal.core.clock import utcnow
from groupcal.core.config import settings
from groupcal.core.errors import ConflictError, NotFoundError, ValidationError
from groupcal.groups.permissions import Capability, require_capability
from groupcal.models import (
    ApprovalStatus,
    Event,
    EventStatus,
    Group,
    NotificationType,
    Role,
)

logger = logging.getLogger(__name__)


class ReviewAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


def initial_approval(group: Group | None) -> ApprovalStatus:
    """Approval state a new event starts in."""
    if group is not None and group.require_event_approval:
        return ApprovalStatus.PENDING
    return ApprovalStatus.APPROVED


def seed_approval(event: Event, group: Group | None) -> None:
    """Set the starting approval fields of a new event.

    Group events that need no review count as approved by their creator.
    """
    status = initial_approval(group)
    event.approval_required = status == ApprovalStatus.PENDING
    event.approval_status = status
    event.rejection_reason = None
    if status == ApprovalStatus.APPROVED and group is not None:
        event.approved_by = event.creator_id
        event.approved_at = utcnow()
    else:
        event.approved_by = None
        event.approved_at = None


def announce_new_event(session: Session, group: Group, event: Event) -> int:
    """Tell the group about a freshly created event.

    Pending events go to the reviewers only; approved ones to every
    active member. The creator is never notified of their own event.
    """
    if event.approval_status == ApprovalStatus.PENDING:
        reviewers = repository.list_active_members(session, group.id, roles=(Role.OWNER, Role.ADMIN))
        batch = [
            notifications.build(
                member.user_id,
                event.creator_id,
                NotificationType.EVENT_APPROVAL_REQUIRED,
                "Event awaiting approval",
                f'"{event.title}" in {group.name} needs review',
                group_id=group.id,
                event_id=event.id,
            )
            for member in reviewers
            if member.user_id != event.creator_id
        ]
        return notifications.dispatch(session, batch)
    return notifications.notify_group_members(
        session,
        group.id,
        event.creator_id,
        NotificationType.EVENT_CREATED,
        "New group event",
        f'"{event.title}" was added to {group.name}',
        event_id=event.id,
    )


def review_event(
    session: Session,
    group: Group,
    event_id: UUID,
    reviewer_id: UUID,
    action: str,
    rejection_reason: str | None = None,
) -> Event:
    """Approve or reject a pending group event.

    Raises:
        ValidationError: ``action`` is neither approve nor reject.
        ForbiddenError: the reviewer lacks ``edit_event`` in the group.
        NotFoundError: no such live event in this group.
        ConflictError: the event is no longer pending.
    """
    try:
        decision = ReviewAction(action)
    except ValueError:
        raise ValidationError("action must be 'approve' or 'reject'")

    require_capability(
        session, group, reviewer_id, Capability.EDIT_EVENT,
        "Only group owners and admins can review events",
    )
    event = repository.find_active_event(session, event_id)
    if event is None or event.group_id != group.id:
        raise NotFoundError("Event not found")
    if event.approval_status != ApprovalStatus.PENDING:
        raise ConflictError(f"Event is not pending approval (status: {event.approval_status.value})")

    now = utcnow()
    if decision == ReviewAction.APPROVE:
        event.approval_status = ApprovalStatus.APPROVED
        event.approved_by = reviewer_id
        event.approved_at = now
    else:
        event.approval_status = ApprovalStatus.REJECTED
        event.rejection_reason = (rejection_reason or "").strip() or settings.default_rejection_reason
        event.status = EventStatus.CANCELLED
    event.updated_at = now
    session.add(event)
    session.commit()
    session.refresh(event)
    logger.info(f"Event {event.id} in group {group.id} {event.approval_status.value} by {reviewer_id}")

    _notify_outcome(session, group, event, reviewer_id)
    return event


def _notify_outcome(session: Session, group: Group, event: Event, reviewer_id: UUID) -> None:
    if event.approval_status == ApprovalStatus.APPROVED:
        if event.creator_id != reviewer_id:
            notifications.dispatch(session, [
                notifications.build(
                    event.creator_id,
                    reviewer_id,
                    NotificationType.EVENT_APPROVED,
                    "Event approved",
                    f'"{event.title}" is now visible in {group.name}',
                    group_id=group.id,
                    event_id=event.id,
                )
            ])
        notifications.notify_group_members(
            session,
            group.id,
            reviewer_id,
            NotificationType.EVENT_PUBLISHED,
            "New group event",
            f'"{event.title}" was published in {group.name}',
            event_id=event.id,
        )
        return

    if event.creator_id != reviewer_id:
        notifications.dispatch(session, [
            notifications.build(
                event.creator_id,
                reviewer_id,
                NotificationType.EVENT_REJECTED,
                "Event rejected",
                f'"{event.title}" was rejected: {event.rejection_reason}',
                group_id=group.id,
                event_id=event.id,
                reason=event.rejection_reason,
            )
        ])

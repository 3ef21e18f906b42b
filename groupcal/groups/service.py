"""Group lifecycle, membership management and group-scoped events."""
import logging
from datetime import datetime
from uuid import UUID

from sqlmodel import Session, col, select

from groupcal import repository
from groupcal.calendar import events as event_service
from groupcal.calendar.recurrence import Occurrence
from groupcal.calendar.visibility import expand_in_range, range_condition
from groupcal.core.clock import utcnow
from groupcal.core.errors import ForbiddenError, NotFoundError, ValidationError
from groupcal.groups import approval
from groupcal.groups.invitations import assign_invite_code
from groupcal.groups.permissions import (
    Capability,
    load_group,
    member_has_capability,
    require_capability,
)
from groupcal.models import (
    ApprovalStatus,
    Event,
    EventStatus,
    Group,
    GroupMember,
    GroupVisibility,
    MemberStatus,
    Role,
    User,
)
from groupcal.schemas import GroupCreate, GroupEventCreate, GroupSettingsIn, GroupUpdate

logger = logging.getLogger(__name__)


def _apply_settings(group: Group, settings_in: GroupSettingsIn) -> None:
    for field, value in settings_in.model_dump(exclude_none=True).items():
        setattr(group, field, value)


def list_user_groups(
    session: Session, user_id: UUID, role: Role | None = None
) -> list[tuple[Group, GroupMember]]:
    """Active groups the user belongs to, most recently joined first."""
    statement = (
        select(Group, GroupMember)
        .join(GroupMember, GroupMember.group_id == Group.id)
        .where(GroupMember.user_id == user_id)
        .where(GroupMember.status == MemberStatus.ACTIVE)
        .where(Group.is_active == True)  # noqa: E712
    )
    if role is not None:
        statement = statement.where(GroupMember.role == role)
    statement = statement.order_by(col(GroupMember.joined_at).desc())
    return [(group, membership) for group, membership in session.exec(statement).all()]


def create_group(session: Session, user: User, payload: GroupCreate) -> tuple[Group, GroupMember]:
    """Create a group owned by ``user``; invite-only groups get an invite code."""
    group = Group(
        name=payload.name,
        description=payload.description.strip(),
        visibility=payload.visibility,
        creator_id=user.id,
    )
    _apply_settings(group, payload.settings)
    session.add(group)
    session.flush()

    owner = GroupMember(group_id=group.id, user_id=user.id)
    owner.activate(Role.OWNER)
    session.add(owner)
    repository.recount_members(session, group)
    session.commit()
    session.refresh(group)
    session.refresh(owner)
    logger.info(f"User {user.id} created group {group.id} ({group.visibility.value})")

    if group.visibility == GroupVisibility.INVITE_ONLY:
        assign_invite_code(session, group)
    return group, owner


def search_public_groups(
    session: Session, query: str, limit: int = 10, offset: int = 0
) -> list[Group]:
    query = (query or "").strip()
    if not query:
        raise ValidationError("Search query is required")
    pattern = f"%{query}%"
    statement = (
        select(Group)
        .where(Group.is_active == True)  # noqa: E712
        .where(Group.visibility == GroupVisibility.PUBLIC)
        .where(col(Group.name).ilike(pattern) | col(Group.description).ilike(pattern))
        .order_by(col(Group.member_count).desc(), Group.name)
        .offset(offset)
        .limit(limit)
    )
    return list(session.exec(statement).all())


def get_group_detail(
    session: Session, group_id: UUID, user_id: UUID
) -> tuple[Group, GroupMember | None, list[GroupMember]]:
    """Return the group, the caller's active membership and the active members.

    Private groups are only readable by their members.
    """
    group = load_group(session, group_id)
    membership = repository.get_active_membership(session, group.id, user_id)
    if group.visibility == GroupVisibility.PRIVATE and membership is None and group.creator_id != user_id:
        raise ForbiddenError("You are not a member of this group")
    return group, membership, repository.list_active_members(session, group.id)


def can_see_invite_code(session: Session, group: Group, user_id: UUID) -> bool:
    membership = repository.get_membership(session, group.id, user_id)
    return member_has_capability(group, membership, user_id, Capability.INVITE_MEMBER)


def update_group(session: Session, group_id: UUID, user_id: UUID, payload: GroupUpdate) -> Group:
    group = load_group(session, group_id)
    require_capability(session, group, user_id, Capability.EDIT_GROUP,
                       "You do not have permission to edit this group")

    if payload.name is not None and payload.name.strip():
        group.name = payload.name.strip()
    if payload.description is not None:
        group.description = payload.description.strip()
    if payload.visibility is not None:
        group.visibility = payload.visibility
    if payload.settings is not None:
        _apply_settings(group, payload.settings)
    group.updated_at = utcnow()
    session.add(group)
    session.commit()
    session.refresh(group)
    logger.info(f"Group {group.id} updated by {user_id}")

    if group.visibility == GroupVisibility.INVITE_ONLY and not group.invite_code:
        assign_invite_code(session, group)
    return group


def delete_group(session: Session, group_id: UUID, user_id: UUID) -> None:
    group = load_group(session, group_id)
    require_capability(session, group, user_id, Capability.DELETE_GROUP,
                       "Only the group owner can delete this group")
    repository.deactivate_group(session, group)
    session.commit()


def _active_member_or_404(session: Session, group: Group, user_id: UUID) -> GroupMember:
    membership = repository.get_active_membership(session, group.id, user_id)
    if membership is None:
        raise NotFoundError("Member not found")
    return membership


def remove_member(session: Session, group_id: UUID, actor_id: UUID, member_id: UUID) -> None:
    group = load_group(session, group_id)
    require_capability(session, group, actor_id, Capability.REMOVE_MEMBER,
                       "You do not have permission to remove members")
    if member_id == group.creator_id:
        raise ValidationError("The group creator cannot be removed")
    membership = _active_member_or_404(session, group, member_id)

    membership.status = MemberStatus.INACTIVE
    membership.updated_at = utcnow()
    session.add(membership)
    repository.recount_members(session, group)
    session.commit()
    logger.info(f"User {member_id} removed from group {group.id} by {actor_id}")


def change_member_role(
    session: Session, group_id: UUID, actor_id: UUID, member_id: UUID, role: Role
) -> GroupMember:
    group = load_group(session, group_id)
    require_capability(session, group, actor_id, Capability.REMOVE_MEMBER,
                       "You do not have permission to change member roles")
    if role == Role.OWNER:
        raise ValidationError("role must be admin, member or viewer")
    if member_id == group.creator_id:
        raise ValidationError("The group creator's role cannot be changed")
    membership = _active_member_or_404(session, group, member_id)

    membership.role = role
    membership.updated_at = utcnow()
    session.add(membership)
    session.commit()
    session.refresh(membership)
    logger.info(f"User {member_id} in group {group.id} is now {role.value}")
    return membership


def leave_group(session: Session, group_id: UUID, user_id: UUID) -> None:
    group = load_group(session, group_id)
    if user_id == group.creator_id:
        raise ValidationError("The group creator cannot leave; delete the group instead")
    membership = repository.get_active_membership(session, group.id, user_id)
    if membership is None:
        raise NotFoundError("You are not a member of this group")

    membership.status = MemberStatus.INACTIVE
    membership.updated_at = utcnow()
    session.add(membership)
    repository.recount_members(session, group)
    session.commit()
    logger.info(f"User {user_id} left group {group.id}")


def create_group_event(
    session: Session, group_id: UUID, user: User, payload: GroupEventCreate
) -> Event:
    """Create an event inside a group, pending review if the group requires it.

    Raises:
        NotFoundError: the group does not exist or is deactivated.
        ForbiddenError: the caller lacks ``create_event``, or is a plain
            member of a group that does not let members create events.
    """
    group = load_group(session, group_id)
    membership = require_capability(session, group, user.id, Capability.CREATE_EVENT,
                                    "You do not have permission to create events in this group")
    if (
        group.creator_id != user.id
        and membership is not None
        and membership.role == Role.MEMBER
        and not group.allow_members_create_events
    ):
        raise ForbiddenError("Members cannot create events in this group")

    for share in payload.shared_with:
        event_service.check_share_target(session, user.id, share.user_id)

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
        group_id=group.id,
        privacy=payload.privacy or group.default_event_privacy,
    )
    event.set_recurrence(payload.recurrence.to_rule())
    approval.seed_approval(event, group)
    session.add(event)
    session.flush()
    for share in payload.shared_with:
        event_service.add_share(session, event, share)
    session.commit()
    session.refresh(event)
    logger.info(
        f"User {user.id} created event {event.id} in group {group.id} "
        f"(approval {event.approval_status.value})"
    )

    approval.announce_new_event(session, group, event)
    return event


def list_group_events(
    session: Session,
    group_id: UUID,
    user_id: UUID,
    range_start: datetime | None = None,
    range_end: datetime | None = None,
    include_pending: bool = False,
) -> tuple[Group, GroupMember | None, list[Event | Occurrence]]:
    """Published events of a group, for its active members.

    Pending events are added only when asked for by someone who may
    review them. With a date range, recurring events are expanded over
    it; without one the stored events are returned as they are.
    """
    group = load_group(session, group_id)
    membership = repository.get_active_membership(session, group.id, user_id)
    if membership is None and group.creator_id != user_id:
        raise ForbiddenError("You are not a member of this group")

    statuses = [ApprovalStatus.APPROVED]
    if include_pending and member_has_capability(group, membership, user_id, Capability.EDIT_EVENT):
        statuses.append(ApprovalStatus.PENDING)

    statement = (
        select(Event)
        .where(Event.group_id == group.id)
        .where(Event.is_deleted == False)  # noqa: E712
        .where(Event.status == EventStatus.PUBLISHED)
        .where(col(Event.approval_status).in_(statuses))
    )
    if range_start is not None and range_end is not None:
        events = session.exec(statement.where(range_condition(range_start, range_end))).all()
        return group, membership, expand_in_range(events, range_start, range_end)

    events = session.exec(statement.order_by(Event.start_date)).all()
    return group, membership, list(events)

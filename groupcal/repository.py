"""Explicit data access helpers.

Every read that must skip soft-deleted or deactivated rows goes through a
function here, and every write that must keep a denormalized value in
step (the group member count) calls the matching function at its call
site. Nothing happens implicitly on save.
"""
import logging
from uuid import UUID

from sqlalchemy import func
from sqlmodel import Session, select

from groupcal.core.clock import utcnow
from groupcal.models import (
    Event,
    Group,
    GroupMember,
    Invitation,
    InvitationStatus,
    MemberStatus,
    Role,
    User,
)

logger = logging.getLogger(__name__)


def find_user_by_email(session: Session, email: str) -> User | None:
    return session.exec(select(User).where(User.email == email.strip().lower())).first()


def find_active_event(session: Session, event_id: UUID) -> Event | None:
    """Return the event unless it is missing or soft-deleted."""
    event = session.get(Event, event_id)
    if event is None or event.is_deleted:
        return None
    return event


def get_active_group(session: Session, group_id: UUID) -> Group | None:
    """Return the group unless it is missing or deactivated."""
    group = session.get(Group, group_id)
    if group is None or not group.is_active:
        return None
    return group


def find_group_by_invite_code(session: Session, code: str) -> Group | None:
    statement = (
        select(Group)
        .where(Group.invite_code == code)
        .where(Group.is_active == True)  # noqa: E712
    )
    return session.exec(statement).first()


def get_membership(session: Session, group_id: UUID, user_id: UUID) -> GroupMember | None:
    """Return the membership row for (group, user) in any status."""
    statement = (
        select(GroupMember)
        .where(GroupMember.group_id == group_id)
        .where(GroupMember.user_id == user_id)
    )
    return session.exec(statement).first()


def get_active_membership(session: Session, group_id: UUID, user_id: UUID) -> GroupMember | None:
    membership = get_membership(session, group_id, user_id)
    if membership is None or not membership.is_active:
        return None
    return membership


def list_active_members(
    session: Session,
    group_id: UUID,
    roles: tuple[Role, ...] | None = None,
) -> list[GroupMember]:
    statement = (
        select(GroupMember)
        .where(GroupMember.group_id == group_id)
        .where(GroupMember.status == MemberStatus.ACTIVE)
    )
    if roles:
        statement = statement.where(GroupMember.role.in_(roles))
    return list(session.exec(statement.order_by(GroupMember.joined_at)).all())


def active_group_ids_for_user(session: Session, user_id: UUID) -> list[UUID]:
    """Ids of active groups in which ``user_id`` holds an active membership."""
    statement = (
        select(GroupMember.group_id)
        .join(Group, Group.id == GroupMember.group_id)
        .where(GroupMember.user_id == user_id)
        .where(GroupMember.status == MemberStatus.ACTIVE)
        .where(Group.is_active == True)  # noqa: E712
    )
    return list(session.exec(statement).all())


def recount_members(session: Session, group: Group) -> int:
    """Refresh ``group.member_count`` from the active membership rows."""
    session.flush()
    count = session.exec(
        select(func.count())
        .select_from(GroupMember)
        .where(GroupMember.group_id == group.id)
        .where(GroupMember.status == MemberStatus.ACTIVE)
    ).one()
    group.member_count = count
    session.add(group)
    return count


def deactivate_group(session: Session, group: Group) -> None:
    """Soft-delete a group along with its memberships, events and open invitations."""
    now = utcnow()
    group.is_active = False
    group.updated_at = now
    session.add(group)

    memberships = session.exec(
        select(GroupMember).where(GroupMember.group_id == group.id)
    ).all()
    for membership in memberships:
        membership.status = MemberStatus.INACTIVE
        membership.updated_at = now
        session.add(membership)

    events = session.exec(
        select(Event)
        .where(Event.group_id == group.id)
        .where(Event.is_deleted == False)  # noqa: E712
    ).all()
    for event in events:
        event.is_deleted = True
        event.updated_at = now
        session.add(event)

    invitations = session.exec(
        select(Invitation)
        .where(Invitation.group_id == group.id)
        .where(Invitation.status == InvitationStatus.PENDING)
    ).all()
    for invitation in invitations:
        invitation.status = InvitationStatus.CANCELLED
        session.add(invitation)

    group.member_count = 0
    logger.info(
        f"Deactivated group {group.id}: {len(memberships)} memberships, "
        f"{len(events)} events, {len(invitations)} invitations"
    )

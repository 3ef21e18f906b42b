"""Group role capabilities.

A single static matrix answers "may this role do that"; every mutating
group operation goes through :func:`require_capability` rather than
comparing role names itself.
"""
from enum import Enum
from uuid import UUID

from sqlmodel import Session

from groupcal import repository
from groupcal.core.errors import ForbiddenError, NotFoundError
from groupcal.models import Group, GroupMember, Role


class Capability(str, Enum):
    VIEW = "view"
    CREATE_EVENT = "create_event"
    EDIT_EVENT = "edit_event"
    DELETE_EVENT = "delete_event"
    INVITE_MEMBER = "invite_member"
    REMOVE_MEMBER = "remove_member"
    EDIT_GROUP = "edit_group"
    DELETE_GROUP = "delete_group"


CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.OWNER: frozenset(Capability),
    Role.ADMIN: frozenset(Capability) - {Capability.DELETE_GROUP},
    Role.MEMBER: frozenset({Capability.VIEW, Capability.CREATE_EVENT}),
    Role.VIEWER: frozenset({Capability.VIEW}),
}

# Roles an inviter or admin may hand out; ownership is never transferable
ASSIGNABLE_ROLES = (Role.ADMIN, Role.MEMBER, Role.VIEWER)


def capabilities_for(role: Role | None) -> frozenset[Capability]:
    if role is None:
        return frozenset()
    return CAPABILITIES.get(Role(role), frozenset())


def has_capability(role: Role | None, action: Capability | str) -> bool:
    """Return True when ``role`` grants ``action``."""
    try:
        action = Capability(action)
    except ValueError:
        return False
    return action in capabilities_for(role)


def member_has_capability(
    group: Group,
    membership: GroupMember | None,
    user_id: UUID,
    action: Capability | str,
) -> bool:
    """Capability check for a user in a group.

    The group creator passes every check even if the stored role drifted.
    Anyone else needs an active membership whose role grants ``action``.
    """
    if group.creator_id == user_id:
        return True
    if membership is None or not membership.is_active:
        return False
    return has_capability(membership.role, action)


def check_user_permission(
    session: Session, group: Group, user_id: UUID, action: Capability | str
) -> bool:
    membership = repository.get_membership(session, group.id, user_id)
    return member_has_capability(group, membership, user_id, action)


def require_capability(
    session: Session,
    group: Group,
    user_id: UUID,
    action: Capability,
    message: str | None = None,
) -> GroupMember | None:
    """Raise ForbiddenError unless ``user_id`` may perform ``action``.

    Returns the caller's membership row (None for a creator whose row is
    missing).
    """
    membership = repository.get_membership(session, group.id, user_id)
    if not member_has_capability(group, membership, user_id, action):
        raise ForbiddenError(message or f"Missing '{action.value}' permission in this group")
    return membership


def load_group(session: Session, group_id: UUID) -> Group:
    group = repository.get_active_group(session, group_id)
    if group is None:
        raise NotFoundError("Group not found")
    return group

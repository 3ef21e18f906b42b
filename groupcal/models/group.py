"""Group and membership models."""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from groupcal.core.clock import utcnow
from groupcal.models.event import Privacy


class GroupVisibility(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"
    INVITE_ONLY = "invite_only"


class Role(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"
    VIEWER = "viewer"


class MemberStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    INACTIVE = "inactive"
    BANNED = "banned"


class Group(SQLModel, table=True):
    """A group that owns events and grants roles to its members.

    The creator always holds the owner role. Groups are deactivated
    (``is_active=False``) rather than deleted.

    Attributes:
        id: Unique identifier (UUID).
        name: Display name.
        description: Free text description.
        visibility: public, private or invite_only.
        invite_code: Shared join code; unique when present.
        allow_members_create_events: Plain members may create events.
        require_event_approval: New events start pending review.
        allow_members_invite: Informational flag exposed to clients.
        default_event_privacy: Privacy applied to new group events.
        member_count: Denormalized count of active members, maintained by
            :func:`groupcal.repository.recount_members`.
        creator_id: The owner.
        is_active: False once the group is deleted.
    """
    __tablename__ = "groups"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    name: str
    description: str = ""
    visibility: GroupVisibility = Field(default=GroupVisibility.PRIVATE, index=True)
    invite_code: str | None = Field(default=None, unique=True, index=True)

    allow_members_create_events: bool = Field(default=True)
    require_event_approval: bool = Field(default=False)
    allow_members_invite: bool = Field(default=True)
    default_event_privacy: Privacy = Field(default=Privacy.GROUP_ONLY)

    member_count: int = Field(default=0)
    creator_id: UUID = Field(foreign_key="users.id", index=True)
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def settings(self) -> dict:
        return {
            "allow_members_create_events": self.allow_members_create_events,
            "require_event_approval": self.require_event_approval,
            "allow_members_invite": self.allow_members_invite,
            "default_event_privacy": self.default_event_privacy.value,
        }


class GroupMember(SQLModel, table=True):
    """A user's membership record in a group.

    At most one row exists per (group, user); leaving or being removed
    flips ``status`` to inactive so the row can be reactivated later.

    Attributes:
        id: Unique identifier (UUID).
        group_id: The group.
        user_id: The member.
        role: owner, admin, member or viewer.
        status: pending, active, inactive or banned. Only active
            memberships carry capabilities.
        joined_at: Set each time the membership becomes active.
        invited_by: Inviter, when the membership came from an invitation.
    """
    __tablename__ = "group_members"
    __table_args__ = (UniqueConstraint("group_id", "user_id"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    group_id: UUID = Field(foreign_key="groups.id", index=True)
    user_id: UUID = Field(foreign_key="users.id", index=True)
    role: Role = Field(default=Role.MEMBER)
    status: MemberStatus = Field(default=MemberStatus.PENDING, index=True)
    joined_at: datetime | None = None
    invited_by: UUID | None = Field(default=None, foreign_key="users.id")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_active(self) -> bool:
        return self.status == MemberStatus.ACTIVE

    def activate(self, role: Role) -> None:
        """Move into the active state with ``role``, stamping joined_at."""
        self.status = MemberStatus.ACTIVE
        self.role = role
        self.joined_at = utcnow()
        self.updated_at = self.joined_at

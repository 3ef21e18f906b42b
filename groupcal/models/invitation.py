"""Invitation model for group membership offers."""

import secrets
from datetime import datetime, timedelta
from enum import Enum
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel

from groupcal.core.clock import utcnow
from groupcal.core.config import settings
from groupcal.models.group import Role


class InvitationType(str, Enum):
    DIRECT = "direct"
    EMAIL = "email"
    INVITE_CODE = "invite_code"


class InvitationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


def default_expiry() -> datetime:
    return utcnow() + timedelta(days=settings.invitation_expiry_days)


def generate_token() -> str:
    return secrets.token_hex(32)


class Invitation(SQLModel, table=True):
    """An offer of membership in a group.

    Every status other than pending is terminal. Expiry is derived from
    ``expires_at`` and written back as ``expired`` the next time the
    invitation is read or swept (see :mod:`groupcal.groups.invitations`).

    Attributes:
        id: Unique identifier (UUID).
        group_id: Group the invitee would join.
        inviter_id: User who sent the invitation.
        invitee_id: Target account, or None for email invitations to
            addresses without an account yet.
        email: Target email address (lower-cased).
        type: direct, email or invite_code.
        status: pending, accepted, declined, expired or cancelled.
        role: Role granted on acceptance.
        message: Optional note from the inviter.
        token: Secret used for link-based acceptance.
        invite_code: Group code used, for invite_code audit records.
        expires_at: When a pending invitation stops being answerable.
        responded_at: When the invitee accepted or declined.
    """
    __tablename__ = "invitations"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    group_id: UUID = Field(foreign_key="groups.id", index=True)
    inviter_id: UUID = Field(foreign_key="users.id")
    invitee_id: UUID | None = Field(default=None, foreign_key="users.id", index=True)
    email: str | None = Field(default=None, index=True)
    type: InvitationType
    status: InvitationStatus = Field(default=InvitationStatus.PENDING, index=True)
    role: Role = Field(default=Role.MEMBER)
    message: str = ""
    token: str = Field(default_factory=generate_token, unique=True, index=True)
    invite_code: str | None = None
    expires_at: datetime = Field(default_factory=default_expiry, index=True)
    responded_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def is_expired(self) -> bool:
        return self.expires_at < utcnow()

    @property
    def can_respond(self) -> bool:
        return self.status == InvitationStatus.PENDING and not self.is_expired

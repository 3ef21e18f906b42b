"""Notification model.

Notifications are produced as side effects of approval and invitation
transitions. Delivery (email, push) happens elsewhere; this table is the
in-app inbox.
"""

from datetime import datetime, timedelta
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from groupcal.core.clock import utcnow
from groupcal.core.config import settings


class NotificationType(str, Enum):
    GROUP_INVITATION = "group_invitation"
    GROUP_MEMBER_ADDED = "group_member_added"
    INVITATION_DECLINED = "invitation_declined"
    EVENT_CREATED = "event_created"
    EVENT_PUBLISHED = "event_published"
    EVENT_APPROVAL_REQUIRED = "event_approval_required"
    EVENT_APPROVED = "event_approved"
    EVENT_REJECTED = "event_rejected"


class NotificationStatus(str, Enum):
    UNREAD = "unread"
    READ = "read"
    ARCHIVED = "archived"


def default_expiry() -> datetime:
    return utcnow() + timedelta(days=settings.notification_expiry_days)


class Notification(SQLModel, table=True):
    """An in-app message to a single recipient.

    Attributes:
        id: Unique identifier (UUID).
        recipient_id: User who receives the notification.
        sender_id: User whose action produced it.
        type: What happened.
        title: Short headline.
        message: Body text.
        data: Loosely typed payload (group_id, event_id, invitation_id as
            strings).
        status: unread, read or archived.
        read_at: When the recipient read it.
        expires_at: After this moment the notification is archived.
    """
    __tablename__ = "notifications"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    recipient_id: UUID = Field(foreign_key="users.id", index=True)
    sender_id: UUID = Field(foreign_key="users.id")
    type: NotificationType
    title: str
    message: str = ""
    data: dict = Field(default_factory=dict, sa_column=Column(JSON))
    status: NotificationStatus = Field(default=NotificationStatus.UNREAD, index=True)
    read_at: datetime | None = None
    expires_at: datetime = Field(default_factory=default_expiry, index=True)
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def is_expired(self) -> bool:
        return self.expires_at < utcnow()

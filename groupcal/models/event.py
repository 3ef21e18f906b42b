"""Event and sharing models.

An Event is either personal (``group_id`` is None) or group-scoped. Its
recurrence rule and approval state are embedded as flat columns and
exposed through the :attr:`Event.recurrence` value object.

Events are never hard-deleted; ``is_deleted`` hides them from every
query in :mod:`groupcal.repository`.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from groupcal.calendar.recurrence import RecurrenceEndType, RecurrenceRule, RecurrenceType
from groupcal.core.clock import utcnow


class Privacy(str, Enum):
    PRIVATE = "private"
    SHARED = "shared"
    PUBLIC = "public"
    GROUP_ONLY = "group_only"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class EventStatus(str, Enum):
    PUBLISHED = "published"
    CANCELLED = "cancelled"


class Event(SQLModel, table=True):
    """A calendar event, possibly recurring, possibly owned by a group.

    Attributes:
        id: Unique identifier (UUID).
        title: Event title.
        description: Free text description.
        start_date: When the base instance starts (naive wall clock).
        end_date: When the base instance ends; never before start_date.
        is_all_day: Whether the event spans whole days.
        color: Display color token.
        category: Free-form category (work, personal, ...).
        location: Where the event happens.
        creator_id: Owner of the event.
        privacy: private, shared, public or group_only.
        group_id: Owning group, or None for personal events.
        status: published, or cancelled once rejected by a reviewer.
        approval_required: Whether the group demanded review at creation.
        approval_status: pending, approved or rejected. Non-group events
            are always approved.
        approved_by: Reviewer who approved the event.
        approved_at: When the event was approved.
        rejection_reason: Reviewer supplied reason for a rejection.
        recurrence_*: Embedded :class:`RecurrenceRule`.
        is_deleted: Soft-delete flag.
    """
    __tablename__ = "events"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    title: str
    description: str = ""
    start_date: datetime = Field(index=True)
    end_date: datetime = Field(index=True)
    is_all_day: bool = Field(default=False)
    color: str = Field(default="morandi-sage")
    category: str = Field(default="personal")
    location: str = ""

    creator_id: UUID = Field(foreign_key="users.id", index=True)
    privacy: Privacy = Field(default=Privacy.PRIVATE, index=True)
    group_id: UUID | None = Field(default=None, foreign_key="groups.id", index=True)
    status: EventStatus = Field(default=EventStatus.PUBLISHED)

    approval_required: bool = Field(default=False)
    approval_status: ApprovalStatus = Field(default=ApprovalStatus.APPROVED, index=True)
    approved_by: UUID | None = Field(default=None, foreign_key="users.id")
    approved_at: datetime | None = None
    rejection_reason: str | None = None

    recurrence_type: RecurrenceType = Field(default=RecurrenceType.NONE)
    recurrence_interval: int = Field(default=1)
    recurrence_end_type: RecurrenceEndType = Field(default=RecurrenceEndType.NEVER)
    recurrence_end_date: datetime | None = None
    recurrence_occurrences: int | None = None

    is_deleted: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def recurrence(self) -> RecurrenceRule:
        return RecurrenceRule(
            type=self.recurrence_type,
            interval=self.recurrence_interval,
            end_type=self.recurrence_end_type,
            end_date=self.recurrence_end_date,
            occurrences=self.recurrence_occurrences,
        )

    def set_recurrence(self, rule: RecurrenceRule) -> None:
        """Store ``rule``, keeping only the field its end condition uses."""
        self.recurrence_type = rule.type
        self.recurrence_interval = rule.interval
        self.recurrence_end_type = rule.end_type
        self.recurrence_end_date = (
            rule.end_date if rule.end_type == RecurrenceEndType.DATE else None
        )
        self.recurrence_occurrences = (
            rule.occurrences if rule.end_type == RecurrenceEndType.COUNT else None
        )

    @property
    def is_group_event(self) -> bool:
        return self.group_id is not None


class EventShare(SQLModel, table=True):
    """An explicit share of an event with another user.

    Attributes:
        id: Unique identifier (UUID).
        event_id: The shared event.
        user_id: The user the event is shared with.
        can_view: Read access (always granted by a share).
        can_comment: Whether the user may comment.
        can_edit: Whether the user may edit the event.
    """
    __tablename__ = "event_shares"
    __table_args__ = (UniqueConstraint("event_id", "user_id"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    event_id: UUID = Field(foreign_key="events.id", index=True)
    user_id: UUID = Field(foreign_key="users.id", index=True)
    can_view: bool = Field(default=True)
    can_comment: bool = Field(default=True)
    can_edit: bool = Field(default=False)

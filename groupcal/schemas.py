"""Request bodies and response serializers."""
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

from groupcal.calendar.recurrence import (
    MAX_INTERVAL,
    MAX_OCCURRENCES,
    Occurrence,
    RecurrenceEndType,
    RecurrenceRule,
    RecurrenceType,
    recurrence_summary,
)
from groupcal.core.clock import to_naive
from groupcal.groups.permissions import capabilities_for
from groupcal.models import (
    Event,
    EventShare,
    Group,
    GroupMember,
    GroupVisibility,
    Invitation,
    Notification,
    Privacy,
    Role,
)


class RecurrenceIn(BaseModel):
    type: RecurrenceType = RecurrenceType.NONE
    interval: int = Field(default=1, ge=1, le=MAX_INTERVAL)
    end_type: RecurrenceEndType = RecurrenceEndType.NEVER
    end_date: datetime | None = None
    occurrences: int | None = Field(default=None, ge=1, le=MAX_OCCURRENCES)

    @model_validator(mode="before")
    @classmethod
    def infer_end_type(cls, data: Any) -> Any:
        # Older clients send only end_date or occurrences
        if isinstance(data, dict) and not data.get("end_type"):
            data = dict(data)
            if data.get("end_date"):
                data["end_type"] = RecurrenceEndType.DATE
            elif data.get("occurrences"):
                data["end_type"] = RecurrenceEndType.COUNT
        return data

    @field_validator("end_date")
    @classmethod
    def naive_end(cls, value: datetime | None) -> datetime | None:
        return to_naive(value)

    @model_validator(mode="after")
    def check_end_condition(self) -> "RecurrenceIn":
        problems = self.to_rule().validate()
        if problems:
            raise ValueError("; ".join(problems))
        return self

    def to_rule(self) -> RecurrenceRule:
        return RecurrenceRule(
            type=self.type,
            interval=self.interval,
            end_type=self.end_type,
            end_date=self.end_date,
            occurrences=self.occurrences,
        )


class ShareIn(BaseModel):
    user_id: UUID
    can_comment: bool = True
    can_edit: bool = False


class _EventFields(BaseModel):
    description: str = Field(default="", max_length=1000)
    is_all_day: bool = False
    color: str = "morandi-sage"
    category: str = "personal"
    location: str = Field(default="", max_length=200)
    recurrence: RecurrenceIn = Field(default_factory=RecurrenceIn)


class EventCreate(_EventFields):
    title: str = Field(min_length=1, max_length=100)
    start_date: datetime
    end_date: datetime
    privacy: Privacy = Privacy.PRIVATE
    shared_with: list[ShareIn] = Field(default_factory=list)

    @field_validator("title")
    @classmethod
    def strip_title(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("title must not be blank")
        return value

    @field_validator("start_date", "end_date")
    @classmethod
    def naive_dates(cls, value: datetime) -> datetime:
        return to_naive(value)

    @field_validator("privacy")
    @classmethod
    def personal_privacy(cls, value: Privacy) -> Privacy:
        if value == Privacy.GROUP_ONLY:
            raise ValueError("group_only privacy is only available for group events")
        return value

    @model_validator(mode="after")
    def check_dates(self) -> "EventCreate":
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be earlier than start_date")
        return self


class GroupEventCreate(EventCreate):
    category: str = "other"
    privacy: Privacy | None = None

    @field_validator("privacy")
    @classmethod
    def personal_privacy(cls, value: Privacy | None) -> Privacy | None:
        return value


class EventUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=1000)
    start_date: datetime | None = None
    end_date: datetime | None = None
    is_all_day: bool | None = None
    color: str | None = None
    category: str | None = None
    location: str | None = Field(default=None, max_length=200)
    privacy: Privacy | None = None
    recurrence: RecurrenceIn | None = None

    @field_validator("start_date", "end_date")
    @classmethod
    def naive_dates(cls, value: datetime | None) -> datetime | None:
        return to_naive(value)


class GroupSettingsIn(BaseModel):
    allow_members_create_events: bool | None = None
    require_event_approval: bool | None = None
    allow_members_invite: bool | None = None
    default_event_privacy: Privacy | None = None

    @field_validator("default_event_privacy")
    @classmethod
    def group_privacy(cls, value: Privacy | None) -> Privacy | None:
        if value == Privacy.SHARED:
            raise ValueError("default_event_privacy must be public, private or group_only")
        return value


class GroupCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str = Field(default="", max_length=500)
    visibility: GroupVisibility = GroupVisibility.PRIVATE
    settings: GroupSettingsIn = Field(default_factory=GroupSettingsIn)

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name must not be blank")
        return value


class GroupUpdate(BaseModel):
    name: str | None = Field(default=None, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    visibility: GroupVisibility | None = None
    settings: GroupSettingsIn | None = None


class InviteEntry(BaseModel):
    user_id: UUID | None = None
    email: str | None = None
    role: Role = Role.MEMBER
    message: str = Field(default="", max_length=200)

    @model_validator(mode="after")
    def check_target(self) -> "InviteEntry":
        if self.user_id is None and not self.email:
            raise ValueError("either user_id or email is required")
        if self.role == Role.OWNER:
            raise ValueError("role must be admin, member or viewer")
        if self.email:
            self.email = self.email.strip().lower()
        return self


class InviteRequest(BaseModel):
    invitations: list[InviteEntry] = Field(min_length=1)


class RoleUpdate(BaseModel):
    role: Role

    @field_validator("role")
    @classmethod
    def not_owner(cls, value: Role) -> Role:
        if value == Role.OWNER:
            raise ValueError("role must be admin, member or viewer")
        return value


class ApprovalAction(BaseModel):
    action: str
    rejection_reason: str | None = Field(
        default=None,
        max_length=200,
        validation_alias=AliasChoices("rejection_reason", "rejectionReason"),
    )


class JoinByCode(BaseModel):
    invite_code: str = Field(default="", validation_alias=AliasChoices("invite_code", "inviteCode"))


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _id(value: UUID | None) -> str | None:
    return str(value) if value else None


def serialize_recurrence(rule: RecurrenceRule) -> dict:
    return {
        "type": rule.type.value,
        "interval": rule.interval,
        "end_type": rule.end_type.value,
        "end_date": _iso(rule.end_date),
        "occurrences": rule.occurrences,
        "summary": recurrence_summary(rule),
    }


def serialize_event(
    item: Event | Occurrence,
    shares: list[EventShare] | None = None,
) -> dict:
    """Serialize an event or one of its occurrences.

    Occurrences carry no id of their own; ``original_event_id`` points at
    the stored event.
    """
    if isinstance(item, Occurrence):
        event = item.event
        start, end = item.start_date, item.end_date
    else:
        event = item
        start, end = event.start_date, event.end_date

    data = {
        "id": None if isinstance(item, Occurrence) else str(event.id),
        "title": event.title,
        "description": event.description,
        "start_date": start.isoformat(),
        "end_date": end.isoformat(),
        "is_all_day": event.is_all_day,
        "color": event.color,
        "category": event.category,
        "location": event.location,
        "creator_id": str(event.creator_id),
        "privacy": event.privacy.value,
        "group_id": _id(event.group_id),
        "status": event.status.value,
        "approval": {
            "required": event.approval_required,
            "status": event.approval_status.value,
            "approved_by": _id(event.approved_by),
            "approved_at": _iso(event.approved_at),
            "rejection_reason": event.rejection_reason,
        },
        "recurrence": serialize_recurrence(event.recurrence),
        "is_recurring": isinstance(item, Occurrence),
        "original_event_id": str(event.id) if isinstance(item, Occurrence) else None,
        "recurrence_date": start.isoformat() if isinstance(item, Occurrence) else None,
    }
    if shares is not None:
        data["shared_with"] = [
            {
                "user_id": str(share.user_id),
                "permissions": {
                    "can_view": share.can_view,
                    "can_comment": share.can_comment,
                    "can_edit": share.can_edit,
                },
            }
            for share in shares
        ]
    return data


def serialize_group(group: Group, membership: GroupMember | None = None) -> dict:
    return {
        "id": str(group.id),
        "name": group.name,
        "description": group.description,
        "visibility": group.visibility.value,
        "invite_code": group.invite_code,
        "settings": group.settings,
        "member_count": group.member_count,
        "creator_id": str(group.creator_id),
        "user_role": membership.role.value if membership and membership.is_active else None,
        "created_at": _iso(group.created_at),
    }


def serialize_group_summary(group: Group) -> dict:
    return {"id": str(group.id), "name": group.name, "description": group.description}


def serialize_member(member: GroupMember) -> dict:
    return {
        "id": str(member.id),
        "user_id": str(member.user_id),
        "role": member.role.value,
        "status": member.status.value,
        "joined_at": _iso(member.joined_at),
        "permissions": sorted(c.value for c in capabilities_for(member.role)),
    }


def serialize_invitation(invitation: Invitation, include_token: bool = False) -> dict:
    data = {
        "id": str(invitation.id),
        "group_id": str(invitation.group_id),
        "inviter_id": str(invitation.inviter_id),
        "invitee_id": _id(invitation.invitee_id),
        "email": invitation.email,
        "type": invitation.type.value,
        "status": invitation.status.value,
        "role": invitation.role.value,
        "message": invitation.message,
        "expires_at": _iso(invitation.expires_at),
        "responded_at": _iso(invitation.responded_at),
        "created_at": _iso(invitation.created_at),
    }
    if include_token:
        data["token"] = invitation.token
    return data


def serialize_notification(notification: Notification) -> dict:
    return {
        "id": str(notification.id),
        "recipient_id": str(notification.recipient_id),
        "sender_id": str(notification.sender_id),
        "type": notification.type.value,
        "title": notification.title,
        "message": notification.message,
        "data": notification.data or {},
        "status": notification.status.value,
        "read_at": _iso(notification.read_at),
        "expires_at": _iso(notification.expires_at),
        "created_at": _iso(notification.created_at),
    }

from groupcal.models.event import ApprovalStatus, Event, EventShare, EventStatus, Privacy
from groupcal.models.group import Group, GroupMember, GroupVisibility, MemberStatus, Role
from groupcal.models.invitation import Invitation, InvitationStatus, InvitationType
from groupcal.models.notification import Notification, NotificationStatus, NotificationType
from groupcal.models.user import User

__all__ = [
    "User",
    "Event",
    "EventShare",
    "Privacy",
    "ApprovalStatus",
    "EventStatus",
    "Group",
    "GroupMember",
    "GroupVisibility",
    "Role",
    "MemberStatus",
    "Invitation",
    "InvitationStatus",
    "InvitationType",
    "Notification",
    "NotificationStatus",
    "NotificationType",
]

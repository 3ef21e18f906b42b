"""Group invitations and the membership changes they cause.

An invitation is ``pending`` until it is accepted, declined, cancelled or
runs past ``expires_at``; all of those are final. Expiry is noticed
lazily: whenever a pending invitation is read for a transition and found
stale it is written back as ``expired`` before anything else happens.

Accepting an invitation and joining with a group's invite code both end
in :func:`grant_membership`, which is the only place a membership moves
into the active state for a non-creator.
"""
import logging
import secrets
import string
from uuid import UUID

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from groupcal import notifications, repository
from groupcal.core.clock import utcnow
from groupcal.core.config import settings
from groupcal.core.errors import (
    ConflictError,
    ForbiddenError,
    InternalError,
    NotFoundError,
    ValidationError,
)
from groupcal.groups.permissions import Capability, require_capability
from groupcal.models import (
    Group,
    GroupMember,
    Invitation,
    InvitationStatus,
    InvitationType,
    MemberStatus,
    NotificationType,
    Role,
    User,
)
from groupcal.models.invitation import default_expiry

logger = logging.getLogger(__name__)

INVITE_CODE_ALPHABET = string.ascii_uppercase + string.digits


# --- Expiry ---

def refresh_expiry(session: Session, invitation: Invitation) -> Invitation:
    """Persist ``expired`` on a pending invitation past its deadline."""
    if invitation.status == InvitationStatus.PENDING and invitation.is_expired:
        invitation.status = InvitationStatus.EXPIRED
        session.add(invitation)
        session.commit()
        session.refresh(invitation)
        logger.info(f"Invitation {invitation.id} expired")
    return invitation


def expire_stale(session: Session) -> int:
    """Mark every overdue pending invitation expired. Returns the count."""
    statement = (
        select(Invitation)
        .where(Invitation.status == InvitationStatus.PENDING)
        .where(Invitation.expires_at < utcnow())
    )
    count = 0
    for invitation in session.exec(statement).all():
        invitation.status = InvitationStatus.EXPIRED
        session.add(invitation)
        count += 1
    session.commit()
    return count


def _ensure_pending(session: Session, invitation: Invitation) -> None:
    refresh_expiry(session, invitation)
    if invitation.status != InvitationStatus.PENDING:
        raise ConflictError(f"Invitation is already {invitation.status.value}")


# --- Lookups ---

def is_addressed_to(invitation: Invitation, user: User) -> bool:
    if invitation.invitee_id is not None and invitation.invitee_id == user.id:
        return True
    return bool(invitation.email) and invitation.email == user.email.lower()


def get_for_invitee(session: Session, invitation_id: UUID, user: User) -> Invitation:
    invitation = session.get(Invitation, invitation_id)
    if invitation is None or not is_addressed_to(invitation, user):
        raise NotFoundError("Invitation not found")
    return invitation


def get_for_inviter(session: Session, invitation_id: UUID, user: User) -> Invitation:
    invitation = session.get(Invitation, invitation_id)
    if invitation is None:
        raise NotFoundError("Invitation not found")
    if invitation.inviter_id != user.id:
        raise ForbiddenError("Only the inviter can manage this invitation")
    return invitation


def get_by_token(session: Session, token: str) -> Invitation:
    """Return the answerable invitation behind a link token."""
    invitation = session.exec(select(Invitation).where(Invitation.token == token)).first()
    if invitation is None:
        raise NotFoundError("Invitation not found or expired")
    refresh_expiry(session, invitation)
    if invitation.status != InvitationStatus.PENDING:
        raise NotFoundError("Invitation not found or expired")
    return invitation


def list_for_user(
    session: Session, user: User, status: InvitationStatus | None = InvitationStatus.PENDING
) -> list[Invitation]:
    """Invitations addressed to ``user`` by id or email, newest first."""
    statement = select(Invitation).where(
        or_(Invitation.invitee_id == user.id, Invitation.email == user.email.lower())
    )
    invitations = session.exec(statement.order_by(Invitation.created_at.desc())).all()
    for invitation in invitations:
        refresh_expiry(session, invitation)
    if status is None:
        return list(invitations)
    return [invitation for invitation in invitations if invitation.status == status]


# --- Membership ---

def grant_membership(
    session: Session,
    group: Group,
    user_id: UUID,
    role: Role,
    invited_by: UUID | None = None,
) -> GroupMember:
    """Make ``user_id`` an active member of ``group`` with ``role``.

    Reuses an inactive membership row when there is one. Leaves the
    change flushed but uncommitted.

    Raises:
        ConflictError: the user is already an active member, including
            when a concurrent request inserted the row first.
        ForbiddenError: the user is banned from the group.
    """
    membership = repository.get_membership(session, group.id, user_id)
    if membership is not None and membership.is_active:
        raise ConflictError("Already a member of this group")
    if membership is not None and membership.status == MemberStatus.BANNED:
        raise ForbiddenError("You are banned from this group")

    if membership is None:
        membership = GroupMember(group_id=group.id, user_id=user_id, invited_by=invited_by)
        membership.activate(role)
        session.add(membership)
        try:
            session.flush()
        except IntegrityError:
            # Another request created the (group, user) row between our read and write
            session.rollback()
            raise ConflictError("Already a member of this group")
    else:
        membership = _reactivate(session, membership.id, role, invited_by)

    repository.recount_members(session, group)
    return membership


def _reactivate(
    session: Session, membership_id: UUID, role: Role, invited_by: UUID | None
) -> GroupMember:
    """Flip an existing row to active only if it is not active already."""
    now = utcnow()
    values = {"status": MemberStatus.ACTIVE, "role": role, "joined_at": now, "updated_at": now}
    if invited_by is not None:
        values["invited_by"] = invited_by
    result = session.exec(
        update(GroupMember)
        .where(GroupMember.id == membership_id)
        .where(GroupMember.status != MemberStatus.ACTIVE)
        .values(**values)
    )
    if result.rowcount == 0:
        # Another request reactivated the row between our read and write
        session.rollback()
        raise ConflictError("Already a member of this group")
    membership = session.get(GroupMember, membership_id)
    session.refresh(membership)
    return membership


def _resolve_member(session: Session, invitation: Invitation) -> UUID:
    if invitation.invitee_id is not None:
        return invitation.invitee_id
    if invitation.email:
        user = repository.find_user_by_email(session, invitation.email)
        if user is not None:
            return user.id
    raise NotFoundError("No account matches this invitation")


def _load_invitation_group(session: Session, invitation: Invitation) -> Group:
    group = repository.get_active_group(session, invitation.group_id)
    if group is None:
        raise NotFoundError("Group not found")
    return group


def _complete_acceptance(
    session: Session, invitation: Invitation, group: Group, user_id: UUID
) -> Invitation:
    grant_membership(session, group, user_id, invitation.role, invited_by=invitation.inviter_id)
    invitation.status = InvitationStatus.ACCEPTED
    invitation.responded_at = utcnow()
    if invitation.invitee_id is None:
        invitation.invitee_id = user_id
    session.add(invitation)
    session.commit()
    session.refresh(invitation)
    logger.info(f"Invitation {invitation.id} accepted; {user_id} joined group {group.id}")

    notifications.dispatch(session, [
        notifications.build(
            invitation.inviter_id,
            user_id,
            NotificationType.GROUP_MEMBER_ADDED,
            f"New member in {group.name}",
            "Your invitation was accepted",
            group_id=group.id,
            invitation_id=invitation.id,
        )
    ])
    return invitation


# --- Transitions ---

def accept(session: Session, invitation_id: UUID, user: User) -> tuple[Invitation, Group]:
    """Accept an invitation addressed to ``user``.

    Raises:
        NotFoundError: no such invitation for this user, the group is
            gone, or no account matches an email-only invitation.
        ConflictError: the invitation is no longer pending, or the user is
            already an active member.
    """
    invitation = get_for_invitee(session, invitation_id, user)
    _ensure_pending(session, invitation)
    group = _load_invitation_group(session, invitation)
    user_id = _resolve_member(session, invitation)
    return _complete_acceptance(session, invitation, group, user_id), group


def accept_by_token(session: Session, token: str, user: User) -> tuple[Invitation, Group]:
    """Accept through a link token.

    An invitation addressed to an account can only be accepted by that
    account. An email invitation with no account attached yet is an open
    link: whoever holds the token joins.
    """
    invitation = get_by_token(session, token)
    if invitation.invitee_id is not None and invitation.invitee_id != user.id:
        raise NotFoundError("Invitation not found or expired")
    group = _load_invitation_group(session, invitation)
    user_id = invitation.invitee_id or user.id
    return _complete_acceptance(session, invitation, group, user_id), group


def decline(session: Session, invitation_id: UUID, user: User) -> Invitation:
    invitation = get_for_invitee(session, invitation_id, user)
    _ensure_pending(session, invitation)

    invitation.status = InvitationStatus.DECLINED
    invitation.responded_at = utcnow()
    session.add(invitation)
    session.commit()
    session.refresh(invitation)
    logger.info(f"Invitation {invitation.id} declined by {user.id}")

    notifications.dispatch(session, [
        notifications.build(
            invitation.inviter_id,
            user.id,
            NotificationType.INVITATION_DECLINED,
            "Invitation declined",
            f"{user.display_name or user.email} declined your invitation",
            group_id=invitation.group_id,
            invitation_id=invitation.id,
        )
    ])
    return invitation


def cancel(session: Session, invitation_id: UUID, user: User) -> Invitation:
    invitation = get_for_inviter(session, invitation_id, user)
    _ensure_pending(session, invitation)

    invitation.status = InvitationStatus.CANCELLED
    session.add(invitation)
    session.commit()
    session.refresh(invitation)
    logger.info(f"Invitation {invitation.id} cancelled by {user.id}")
    return invitation


def resend(session: Session, invitation_id: UUID, user: User) -> Invitation:
    """Push a pending invitation's deadline forward; its status is unchanged."""
    invitation = get_for_inviter(session, invitation_id, user)
    _ensure_pending(session, invitation)

    invitation.expires_at = default_expiry()
    session.add(invitation)
    session.commit()
    session.refresh(invitation)
    logger.info(f"Invitation {invitation.id} resent, now expires {invitation.expires_at.isoformat()}")

    if invitation.invitee_id is not None:
        group = repository.get_active_group(session, invitation.group_id)
        notifications.dispatch(session, [
            _invitation_notice(invitation, group.name if group else "a group")
        ])
    return invitation


def _invitation_notice(invitation: Invitation, group_name: str):
    return notifications.build(
        invitation.invitee_id,
        invitation.inviter_id,
        NotificationType.GROUP_INVITATION,
        f"Invitation to {group_name}",
        invitation.message or f"You have been invited to join {group_name}",
        group_id=invitation.group_id,
        invitation_id=invitation.id,
        token=invitation.token,
    )


def join_by_code(session: Session, code: str, user: User) -> Group:
    """Join a group with its invite code as a plain member.

    An already accepted ``invite_code`` invitation is recorded for audit.
    """
    code = (code or "").strip().upper()
    if not code:
        raise ValidationError("Invite code is required")
    group = repository.find_group_by_invite_code(session, code)
    if group is None:
        raise NotFoundError("Invalid invite code")

    grant_membership(session, group, user.id, Role.MEMBER)
    session.add(Invitation(
        group_id=group.id,
        inviter_id=group.creator_id,
        invitee_id=user.id,
        type=InvitationType.INVITE_CODE,
        status=InvitationStatus.ACCEPTED,
        role=Role.MEMBER,
        invite_code=code,
        responded_at=utcnow(),
    ))
    session.commit()
    session.refresh(group)
    logger.info(f"User {user.id} joined group {group.id} with invite code")

    if group.creator_id != user.id:
        notifications.dispatch(session, [
            notifications.build(
                group.creator_id,
                user.id,
                NotificationType.GROUP_MEMBER_ADDED,
                f"New member in {group.name}",
                f"{user.display_name or user.email} joined with the invite code",
                group_id=group.id,
            )
        ])
    return group


# --- Issuing ---

def invite_members(session: Session, group: Group, inviter: User, entries: list) -> dict:
    """Create one invitation per entry, collecting per-entry failures.

    Entries naming a registered user (by id, or by an email that belongs
    to an account) become direct invitations and notify the invitee;
    other emails become email invitations waiting for that address to
    register.
    """
    require_capability(
        session, group, inviter.id, Capability.INVITE_MEMBER,
        "You do not have permission to invite members",
    )

    sent: list[Invitation] = []
    errors: list[dict] = []
    for index, entry in enumerate(entries):
        target: User | None = None
        if entry.user_id is not None:
            target = session.get(User, entry.user_id)
            if target is None:
                errors.append({"index": index, "message": "User not found"})
                continue
            if entry.email and entry.email != target.email.lower():
                errors.append({"index": index, "message": "Email does not match the selected user"})
                continue
        elif entry.email:
            target = repository.find_user_by_email(session, entry.email)

        if target is not None and repository.get_active_membership(session, group.id, target.id):
            errors.append({"index": index, "message": "User is already a member of this group"})
            continue

        invitation = Invitation(
            group_id=group.id,
            inviter_id=inviter.id,
            invitee_id=target.id if target else None,
            email=target.email.lower() if target else entry.email,
            type=InvitationType.DIRECT if target else InvitationType.EMAIL,
            role=entry.role,
            message=entry.message,
        )
        session.add(invitation)
        sent.append(invitation)

    session.commit()
    for invitation in sent:
        session.refresh(invitation)
    logger.info(f"{inviter.id} sent {len(sent)} invitations for group {group.id}, {len(errors)} failed")

    notifications.dispatch(session, [
        _invitation_notice(invitation, group.name)
        for invitation in sent
        if invitation.invitee_id is not None
    ])
    return {"sent": sent, "errors": errors}


def _random_code() -> str:
    return "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(settings.invite_code_length))


def assign_invite_code(session: Session, group: Group) -> str:
    """Give a persisted group a fresh unique invite code and commit it.

    Collisions are retried with a new code, up to
    ``settings.invite_code_max_attempts`` times.
    """
    group_id = group.id
    for attempt in range(1, settings.invite_code_max_attempts + 1):
        code = _random_code()
        if session.exec(select(Group.id).where(Group.invite_code == code)).first():
            continue
        group.invite_code = code
        group.updated_at = utcnow()
        session.add(group)
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            logger.warning(f"Invite code collision for group {group_id} on attempt {attempt}")
            group = session.get(Group, group_id)
            continue
        session.refresh(group)
        logger.info(f"Assigned invite code to group {group_id}")
        return code
    raise InternalError("Could not generate a unique invite code")


def generate_invite_code(session: Session, group: Group, user_id: UUID) -> str:
    require_capability(
        session, group, user_id, Capability.INVITE_MEMBER,
        "You do not have permission to generate invite codes",
    )
    return assign_invite_code(session, group)

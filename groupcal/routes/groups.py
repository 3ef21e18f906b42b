"""Group routes: groups, members, invitations sent from a group and group events."""
from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session

from groupcal import repository
from groupcal.calendar import events as event_service
from groupcal.core.auth import get_current_user
from groupcal.core.clock import to_naive
from groupcal.core.database import get_session
from groupcal.core.errors import ValidationError
from groupcal.groups import approval, invitations
from groupcal.groups import service as group_service
from groupcal.groups.permissions import load_group
from groupcal.models import Role, User
from groupcal.schemas import (
    ApprovalAction,
    GroupCreate,
    GroupEventCreate,
    GroupUpdate,
    InviteRequest,
    RoleUpdate,
    serialize_event,
    serialize_group,
    serialize_invitation,
    serialize_member,
)

router = APIRouter(prefix="/groups", tags=["groups"])


def _group_payload(session: Session, group, membership, user_id: UUID) -> dict:
    data = serialize_group(group, membership)
    if not group_service.can_see_invite_code(session, group, user_id):
        data["invite_code"] = None
    return data


@router.get("")
async def list_groups(
    role: Role | None = None,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """List the caller's active groups with the caller's role in each."""
    rows = group_service.list_user_groups(session, user.id, role)
    groups = []
    for group, membership in rows:
        data = _group_payload(session, group, membership, user.id)
        data["joined_at"] = membership.joined_at.isoformat() if membership.joined_at else None
        groups.append(data)
    return {"success": True, "groups": groups}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_group(
    payload: GroupCreate,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    group, owner = group_service.create_group(session, user, payload)
    return {"success": True, "group": serialize_group(group, owner)}


@router.get("/search")
async def search_groups(
    query: str = "",
    limit: int = Query(default=10, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """Search active public groups by name or description."""
    groups = group_service.search_public_groups(session, query, limit, offset)
    return {
        "success": True,
        "groups": [_group_payload(session, group, None, user.id) for group in groups],
    }


@router.get("/{group_id}")
async def get_group(
    group_id: UUID,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    group, membership, members = group_service.get_group_detail(session, group_id, user.id)
    data = _group_payload(session, group, membership, user.id)
    data["is_member"] = membership is not None
    data["members"] = [serialize_member(member) for member in members]
    return {"success": True, "group": data}


@router.put("/{group_id}")
async def update_group(
    group_id: UUID,
    payload: GroupUpdate,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    group = group_service.update_group(session, group_id, user.id, payload)
    membership = repository.get_active_membership(session, group.id, user.id)
    return {"success": True, "group": _group_payload(session, group, membership, user.id)}


@router.delete("/{group_id}")
async def delete_group(
    group_id: UUID,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    group_service.delete_group(session, group_id, user.id)
    return {"success": True, "message": "Group deleted"}


@router.post("/{group_id}/invite")
async def invite_members(
    group_id: UUID,
    payload: InviteRequest,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """
    Invite users by id or email.

    Each entry succeeds or fails on its own; failures are reported by
    index and do not stop the rest of the batch.
    """
    group = load_group(session, group_id)
    result = invitations.invite_members(session, group, user, payload.invitations)
    return {
        "success": True,
        "sent": len(result["sent"]),
        "failed": len(result["errors"]),
        "invitations": [serialize_invitation(inv, include_token=True) for inv in result["sent"]],
        "errors": result["errors"],
    }


@router.delete("/{group_id}/members/{member_id}")
async def remove_member(
    group_id: UUID,
    member_id: UUID,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    group_service.remove_member(session, group_id, user.id, member_id)
    return {"success": True, "message": "Member removed"}


@router.put("/{group_id}/members/{member_id}/role")
async def change_member_role(
    group_id: UUID,
    member_id: UUID,
    payload: RoleUpdate,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    member = group_service.change_member_role(session, group_id, user.id, member_id, payload.role)
    return {"success": True, "member": serialize_member(member)}


@router.post("/{group_id}/leave")
async def leave_group(
    group_id: UUID,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    group_service.leave_group(session, group_id, user.id)
    return {"success": True, "message": "Left group"}


@router.post("/{group_id}/events", status_code=status.HTTP_201_CREATED)
async def create_group_event(
    group_id: UUID,
    payload: GroupEventCreate,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """Create a group event; it starts pending when the group requires approval."""
    event = group_service.create_group_event(session, group_id, user, payload)
    shares = event_service.list_shares(session, event.id)
    return {"success": True, "event": serialize_event(event, shares)}


@router.get("/{group_id}/events")
async def list_group_events(
    group_id: UUID,
    start_date: datetime | None = Query(default=None, alias="startDate"),
    end_date: datetime | None = Query(default=None, alias="endDate"),
    include_pending: bool = False,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if (start_date is None) != (end_date is None):
        raise ValidationError("startDate and endDate must be given together")
    group, membership, items = group_service.list_group_events(
        session,
        group_id,
        user.id,
        to_naive(start_date),
        to_naive(end_date),
        include_pending,
    )
    return {
        "success": True,
        "events": [serialize_event(item) for item in items],
        "group": {
            "id": str(group.id),
            "name": group.name,
            "user_role": membership.role.value if membership else None,
        },
    }


@router.put("/{group_id}/events/{event_id}/approve")
async def review_group_event(
    group_id: UUID,
    event_id: UUID,
    payload: ApprovalAction,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """Approve or reject a pending group event."""
    group = load_group(session, group_id)
    event = approval.review_event(
        session, group, event_id, user.id, payload.action, payload.rejection_reason
    )
    return {"success": True, "event": serialize_event(event)}

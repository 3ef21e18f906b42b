"""Invitation routes: answering, managing and joining by code."""
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlmodel import Session

from groupcal.core.auth import get_current_user
from groupcal.core.database import get_session
from groupcal.groups import invitations
from groupcal.groups.permissions import load_group
from groupcal.models import InvitationStatus, User
from groupcal.schemas import (
    JoinByCode,
    serialize_group_summary,
    serialize_invitation,
)

router = APIRouter(prefix="/invitations", tags=["invitations"])


@router.get("")
async def list_invitations(
    status: InvitationStatus | None = InvitationStatus.PENDING,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """Invitations addressed to the caller, by account or by email."""
    items = invitations.list_for_user(session, user, status)
    return {"success": True, "invitations": [serialize_invitation(inv) for inv in items]}


@router.get("/token/{token}")
async def get_invitation_by_token(
    token: str,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    invitation = invitations.get_by_token(session, token)
    group = load_group(session, invitation.group_id)
    return {
        "success": True,
        "invitation": serialize_invitation(invitation),
        "group": serialize_group_summary(group),
    }


@router.post("/token/{token}/accept")
async def accept_invitation_by_token(
    token: str,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    invitation, group = invitations.accept_by_token(session, token, user)
    return {
        "success": True,
        "invitation": serialize_invitation(invitation),
        "group": serialize_group_summary(group),
    }


@router.post("/join-by-code")
async def join_by_code(
    payload: JoinByCode,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """Join a group with its shared invite code."""
    group = invitations.join_by_code(session, payload.invite_code, user)
    return {"success": True, "group": serialize_group_summary(group)}


@router.post("/groups/{group_id}/generate-code")
async def generate_invite_code(
    group_id: UUID,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    group = load_group(session, group_id)
    code = invitations.generate_invite_code(session, group, user.id)
    return {"success": True, "invite_code": code}


@router.post("/{invitation_id}/accept")
async def accept_invitation(
    invitation_id: UUID,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    invitation, group = invitations.accept(session, invitation_id, user)
    return {
        "success": True,
        "invitation": serialize_invitation(invitation),
        "group": serialize_group_summary(group),
    }


@router.post("/{invitation_id}/decline")
async def decline_invitation(
    invitation_id: UUID,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    invitation = invitations.decline(session, invitation_id, user)
    return {"success": True, "invitation": serialize_invitation(invitation)}


@router.delete("/{invitation_id}")
async def cancel_invitation(
    invitation_id: UUID,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    invitation = invitations.cancel(session, invitation_id, user)
    return {"success": True, "invitation": serialize_invitation(invitation)}


@router.post("/{invitation_id}/resend")
async def resend_invitation(
    invitation_id: UUID,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    invitation = invitations.resend(session, invitation_id, user)
    return {"success": True, "invitation": serialize_invitation(invitation, include_token=True)}

"""Caller identity.

Authentication happens upstream; the authenticated user's id reaches us
in the ``X-User-Id`` header.
"""
from uuid import UUID

from fastapi import Depends, Header
from sqlmodel import Session

from groupcal.core.database import get_session
from groupcal.core.errors import AuthenticationError
from groupcal.models import User


def get_current_user(
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
    session: Session = Depends(get_session),
) -> User:
    if not x_user_id:
        raise AuthenticationError("Missing X-User-Id header")
    try:
        user_id = UUID(x_user_id)
    except ValueError:
        raise AuthenticationError("Invalid X-User-Id header")
    user = session.get(User, user_id)
    if user is None:
        raise AuthenticationError("Unknown user")
    return user

"""User model.

Accounts are created by the external authentication service; this table
holds the fields the calendar needs to resolve invitees and recipients.
"""

from datetime import datetime
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel

from groupcal.core.clock import utcnow


class User(SQLModel, table=True):
    """A registered account.

    Attributes:
        id: Unique identifier (UUID).
        email: Lower-cased email address, unique per account. Email
            invitations are matched against it.
        display_name: Human-readable name.
        created_at: When the account row was created.
    """
    __tablename__ = "users"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    email: str = Field(index=True, unique=True)
    display_name: str = ""
    created_at: datetime = Field(default_factory=utcnow)

"""Database configuration and session management.

SQLite is the default backend. Two pragmas are applied to every pooled
connection:

    - **WAL**: readers are not blocked while a request (or the cleanup
      job) is writing.

    - **Foreign keys**: off by default in SQLite; turned on so that
      memberships, shares and invitations always point at real rows.

Uniqueness constraints declared on the models (one membership per
group/user pair, unique invite codes and invitation tokens) are what
arbitrate concurrent writers; the service layer turns the resulting
``IntegrityError`` into a conflict.
"""

from sqlalchemy import event as sa_event
from sqlmodel import Session, SQLModel, create_engine

from groupcal.core.config import settings

connect_args = (
    {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}
)

engine = create_engine(
    settings.database_url,
    connect_args=connect_args,
    echo=settings.debug,
)


@sa_event.listens_for(engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    """Configure SQLite pragmas on each new connection."""
    if not settings.database_url.startswith("sqlite"):
        return
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_and_tables():
    """Create all database tables."""
    # Importing the models registers their tables on SQLModel.metadata
    import groupcal.models  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session():
    """Dependency for getting database session."""
    with Session(engine) as session:
        yield session

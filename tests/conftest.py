"""Shared test fixtures."""

from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, create_engine
from sqlmodel.pool import StaticPool

from groupcal.core.database import get_session
from groupcal.main import app
from groupcal.models import Event, Group, GroupMember, GroupVisibility, Privacy, Role, User


@pytest.fixture(name="engine")
def engine_fixture():
    """Create an in-memory SQLite database for testing."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="session")
def session_fixture(engine):
    """Create a new database session for each test."""
    with Session(engine) as session:
        yield session


@pytest.fixture(name="client")
def client_fixture(session: Session):
    """Create a test client with the test database session."""

    def get_session_override():
        return session

    app.dependency_overrides[get_session] = get_session_override
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


class Factory:
    """Builds rows directly in the test database."""

    def __init__(self, session: Session):
        self.session = session

    def user(self, email: str, name: str = "") -> User:
        user = User(email=email, display_name=name or email.split("@")[0].title())
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def group(self, owner: User, **fields) -> Group:
        """Create an active group with ``owner`` as its owner member."""
        fields.setdefault("name", "Book Club")
        fields.setdefault("visibility", GroupVisibility.PRIVATE)
        group = Group(creator_id=owner.id, member_count=1, **fields)
        self.session.add(group)
        self.session.flush()
        membership = GroupMember(group_id=group.id, user_id=owner.id)
        membership.activate(Role.OWNER)
        self.session.add(membership)
        self.session.commit()
        self.session.refresh(group)
        return group

    def member(self, group: Group, user: User, role: Role = Role.MEMBER) -> GroupMember:
        membership = GroupMember(group_id=group.id, user_id=user.id)
        membership.activate(role)
        self.session.add(membership)
        group.member_count += 1
        self.session.add(group)
        self.session.commit()
        self.session.refresh(membership)
        return membership

    def event(self, creator: User, **fields) -> Event:
        fields.setdefault("title", "Standup")
        fields.setdefault("start_date", datetime(2024, 1, 10, 9, 0))
        fields.setdefault("end_date", datetime(2024, 1, 10, 10, 0))
        fields.setdefault("privacy", Privacy.PRIVATE)
        event = Event(creator_id=creator.id, **fields)
        self.session.add(event)
        self.session.commit()
        self.session.refresh(event)
        return event

    @staticmethod
    def auth(user: User) -> dict:
        """Request headers identifying ``user``."""
        return {"X-User-Id": str(user.id)}


@pytest.fixture(name="factory")
def factory_fixture(session: Session) -> Factory:
    return Factory(session)


@pytest.fixture(name="alice")
def alice_fixture(factory: Factory) -> User:
    return factory.user("alice@example.com", "Alice")


@pytest.fixture(name="bob")
def bob_fixture(factory: Factory) -> User:
    return factory.user("bob@example.com", "Bob")


@pytest.fixture(name="carol")
def carol_fixture(factory: Factory) -> User:
    return factory.user("carol@example.com", "Carol")


@pytest.fixture(name="group")
def group_fixture(factory: Factory, alice: User) -> Group:
    """A private group owned by alice."""
    return factory.group(alice)

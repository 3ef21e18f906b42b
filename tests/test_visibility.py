"""Tests for resolving which events a user may see."""

from collections import Counter
from datetime import datetime

from sqlmodel import Session

from groupcal.calendar.recurrence import Occurrence, RecurrenceType
from groupcal.calendar.visibility import can_user_view, get_user_visible_events
from groupcal.models import ApprovalStatus, EventShare, MemberStatus, Privacy, Role

JAN_START = datetime(2024, 1, 1)
JAN_END = datetime(2024, 1, 31, 23, 59, 59)


def titles(items) -> list[str]:
    return [item.title if not isinstance(item, Occurrence) else item.event.title for item in items]


def base_ids(items) -> list:
    return [item.id for item in items if not isinstance(item, Occurrence)]


class TestVisibilitySources:
    """Tests for each visibility path on its own."""

    def test_owned_private_event(self, session: Session, factory, alice, bob):
        """Private events are seen by their creator only."""
        factory.event(alice, title="Dentist")

        assert titles(get_user_visible_events(session, alice.id, JAN_START, JAN_END)) == ["Dentist"]
        assert get_user_visible_events(session, bob.id, JAN_START, JAN_END) == []

    def test_shared_event(self, session: Session, factory, alice, bob, carol):
        """A share row makes an event visible to that user only."""
        event = factory.event(alice, title="Lunch", privacy=Privacy.SHARED)
        session.add(EventShare(event_id=event.id, user_id=bob.id))
        session.commit()

        assert titles(get_user_visible_events(session, bob.id, JAN_START, JAN_END)) == ["Lunch"]
        assert get_user_visible_events(session, carol.id, JAN_START, JAN_END) == []

    def test_group_event_needs_active_membership(self, session: Session, factory, group, alice, bob, carol):
        """Approved group events are seen by active members only."""
        factory.member(group, bob)
        factory.event(alice, title="Meetup", group_id=group.id, privacy=Privacy.GROUP_ONLY)

        assert titles(get_user_visible_events(session, bob.id, JAN_START, JAN_END)) == ["Meetup"]
        assert get_user_visible_events(session, carol.id, JAN_START, JAN_END) == []

    def test_pending_group_event_hidden_from_members(self, session: Session, factory, group, alice, bob):
        """Pending group events are seen by their creator but not by other members."""
        factory.member(group, bob)
        factory.event(
            bob,
            title="Proposal",
            group_id=group.id,
            privacy=Privacy.GROUP_ONLY,
            approval_required=True,
            approval_status=ApprovalStatus.PENDING,
        )

        assert titles(get_user_visible_events(session, bob.id, JAN_START, JAN_END)) == ["Proposal"]
        assert get_user_visible_events(session, alice.id, JAN_START, JAN_END) == []

    def test_public_event(self, session: Session, factory, alice, carol):
        """Approved public events are seen by everyone."""
        factory.event(alice, title="Concert", privacy=Privacy.PUBLIC)

        assert titles(get_user_visible_events(session, carol.id, JAN_START, JAN_END)) == ["Concert"]

    def test_pending_public_group_event_is_hidden(self, session: Session, factory, group, bob, carol):
        """Public privacy does not leak a group event still awaiting review."""
        factory.member(group, bob)
        factory.event(
            bob,
            title="Open day",
            group_id=group.id,
            privacy=Privacy.PUBLIC,
            approval_required=True,
            approval_status=ApprovalStatus.PENDING,
        )

        assert get_user_visible_events(session, carol.id, JAN_START, JAN_END) == []

    def test_deleted_events_are_hidden(self, session: Session, factory, alice):
        """Soft-deleted events are invisible even to their creator."""
        factory.event(alice, title="Gone", privacy=Privacy.PUBLIC, is_deleted=True)

        assert get_user_visible_events(session, alice.id, JAN_START, JAN_END) == []

    def test_deactivated_group_hides_its_events(self, session: Session, factory, group, alice, bob):
        """Events of a deactivated group are not reached through membership."""
        factory.member(group, bob)
        factory.event(alice, title="Meetup", group_id=group.id, privacy=Privacy.GROUP_ONLY)
        group.is_active = False
        session.add(group)
        session.commit()

        assert get_user_visible_events(session, bob.id, JAN_START, JAN_END) == []

    def test_left_member_loses_group_events(self, session: Session, factory, group, alice, bob):
        """Inactive memberships grant no visibility."""
        membership = factory.member(group, bob)
        factory.event(alice, title="Meetup", group_id=group.id, privacy=Privacy.GROUP_ONLY)
        membership.status = MemberStatus.INACTIVE
        session.add(membership)
        session.commit()

        assert get_user_visible_events(session, bob.id, JAN_START, JAN_END) == []


class TestVisibilityResult:
    """Tests for merging, expansion and ordering."""

    def test_event_reachable_twice_appears_once(self, session: Session, factory, group, alice, bob):
        """An event that is owned, shared, group-visible and public is listed once."""
        factory.member(group, bob)
        event = factory.event(alice, title="Everywhere", group_id=group.id, privacy=Privacy.PUBLIC)
        session.add(EventShare(event_id=event.id, user_id=alice.id))
        session.add(EventShare(event_id=event.id, user_id=bob.id))
        session.commit()

        for user in (alice, bob):
            items = get_user_visible_events(session, user.id, JAN_START, JAN_END)
            assert base_ids(items) == [event.id]

    def test_no_duplicate_base_ids(self, session: Session, factory, group, alice, bob):
        """Base event ids are unique in a mixed result."""
        factory.member(group, bob, Role.ADMIN)
        factory.event(alice, title="A", privacy=Privacy.PUBLIC)
        factory.event(alice, title="B", group_id=group.id, privacy=Privacy.PUBLIC)
        factory.event(bob, title="C", group_id=group.id, privacy=Privacy.GROUP_ONLY)
        factory.event(bob, title="D", privacy=Privacy.PUBLIC, recurrence_type=RecurrenceType.DAILY)

        items = get_user_visible_events(session, bob.id, JAN_START, JAN_END)

        counts = Counter(base_ids(items))
        assert len(counts) == 4
        assert all(count == 1 for count in counts.values())

    def test_recurring_base_outside_range_still_expands(self, session: Session, factory, alice):
        """Repeats of an event that started before the range are returned."""
        factory.event(
            alice,
            title="Weekly sync",
            start_date=datetime(2023, 12, 4, 9, 0),
            end_date=datetime(2023, 12, 4, 10, 0),
            recurrence_type=RecurrenceType.WEEKLY,
        )

        items = get_user_visible_events(session, alice.id, JAN_START, JAN_END)

        assert all(isinstance(item, Occurrence) for item in items)
        assert [item.start_date.day for item in items] == [1, 8, 15, 22, 29]

    def test_results_sorted_by_start(self, session: Session, factory, alice):
        """Base events and occurrences are merged in start order."""
        factory.event(
            alice,
            title="Daily",
            start_date=datetime(2024, 1, 29, 12, 0),
            end_date=datetime(2024, 1, 29, 13, 0),
            recurrence_type=RecurrenceType.DAILY,
        )
        factory.event(
            alice,
            title="Morning",
            start_date=datetime(2024, 1, 30, 8, 0),
            end_date=datetime(2024, 1, 30, 9, 0),
        )

        items = get_user_visible_events(session, alice.id, JAN_START, JAN_END)

        assert titles(items) == ["Daily", "Morning", "Daily", "Daily"]
        assert [item.start_date for item in items] == sorted(item.start_date for item in items)

    def test_soundness_for_outsider(self, session: Session, factory, group, alice, bob, carol):
        """A user outside every group sees only their own, shared and public events."""
        factory.member(group, bob)
        factory.event(alice, title="alice private")
        factory.event(alice, title="alice public", privacy=Privacy.PUBLIC)
        factory.event(alice, title="group only", group_id=group.id, privacy=Privacy.GROUP_ONLY)
        shared = factory.event(bob, title="shared with carol", privacy=Privacy.SHARED)
        factory.event(bob, title="bob shared elsewhere", privacy=Privacy.SHARED)
        factory.event(carol, title="carol private")
        session.add(EventShare(event_id=shared.id, user_id=carol.id))
        session.commit()

        items = get_user_visible_events(session, carol.id, JAN_START, JAN_END)

        assert sorted(titles(items)) == ["alice public", "carol private", "shared with carol"]


class TestCanUserView:
    """Tests for the single-event visibility check."""

    def test_matches_resolver_rules(self, session: Session, factory, group, alice, bob, carol):
        """can_user_view agrees with each visibility path."""
        factory.member(group, bob)
        private = factory.event(alice)
        group_event = factory.event(alice, group_id=group.id, privacy=Privacy.GROUP_ONLY)
        pending = factory.event(
            alice,
            group_id=group.id,
            privacy=Privacy.GROUP_ONLY,
            approval_status=ApprovalStatus.PENDING,
        )

        assert can_user_view(session, private, alice.id)
        assert not can_user_view(session, private, bob.id)
        assert can_user_view(session, group_event, bob.id)
        assert not can_user_view(session, group_event, carol.id)
        assert not can_user_view(session, pending, bob.id)
        assert can_user_view(session, pending, alice.id)

"""Tests for the personal calendar and group management API."""

from datetime import datetime
from uuid import uuid4

from fastapi.testclient import TestClient
from sqlmodel import Session, select

from groupcal.models import GroupMember, GroupVisibility, MemberStatus, Privacy, Role

EVENT_BODY = {
    "title": "Dentist",
    "start_date": "2024-01-10T09:00:00",
    "end_date": "2024-01-10T10:00:00",
}


class TestHealthAndAuth:
    """Tests for the health endpoint and caller identification."""

    def test_health_check(self, client: TestClient):
        """Test health endpoint returns healthy status."""
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_missing_header(self, client: TestClient):
        """Requests without X-User-Id are rejected."""
        response = client.get("/events")
        assert response.status_code == 401
        assert response.json() == {"success": False, "message": "Missing X-User-Id header"}

    def test_malformed_header(self, client: TestClient):
        """A non-UUID user id is rejected."""
        response = client.get("/events", headers={"X-User-Id": "not-a-uuid"})
        assert response.status_code == 401

    def test_unknown_user(self, client: TestClient):
        """A well-formed id with no account is rejected."""
        response = client.get("/events", headers={"X-User-Id": str(uuid4())})
        assert response.status_code == 401


class TestEventRoutes:
    """Tests for /events."""

    def test_create_event(self, client: TestClient, factory, alice, bob):
        """Creating an event returns it with its shares."""
        body = {**EVENT_BODY, "privacy": "shared", "shared_with": [{"user_id": str(bob.id)}]}

        response = client.post("/events", json=body, headers=factory.auth(alice))

        assert response.status_code == 201
        event = response.json()["event"]
        assert event["title"] == "Dentist"
        assert event["creator_id"] == str(alice.id)
        assert event["privacy"] == "shared"
        assert event["approval"]["status"] == "approved"
        assert [share["user_id"] for share in event["shared_with"]] == [str(bob.id)]

    def test_create_rejects_group_only(self, client: TestClient, factory, alice):
        """Personal events cannot be group-only."""
        body = {**EVENT_BODY, "privacy": "group_only"}

        response = client.post("/events", json=body, headers=factory.auth(alice))

        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_create_rejects_blank_title(self, client: TestClient, factory, alice):
        """Whitespace-only titles are invalid."""
        response = client.post("/events", json={**EVENT_BODY, "title": "   "}, headers=factory.auth(alice))
        assert response.status_code == 400

    def test_create_rejects_bad_recurrence(self, client: TestClient, factory, alice):
        """A date-ended rule needs an end date."""
        body = {**EVENT_BODY, "recurrence": {"type": "weekly", "end_type": "date"}}

        response = client.post("/events", json=body, headers=factory.auth(alice))

        assert response.status_code == 400

    def test_share_with_unknown_user(self, client: TestClient, factory, alice):
        """Sharing with a missing user is a 404 and nothing is stored."""
        body = {**EVENT_BODY, "shared_with": [{"user_id": str(uuid4())}]}

        response = client.post("/events", json=body, headers=factory.auth(alice))

        assert response.status_code == 404
        listed = client.get("/events", params={"year": 2024, "month": 1}, headers=factory.auth(alice))
        assert listed.json()["events"] == []

    def test_list_by_month_expands_recurrence(self, client: TestClient, factory, alice):
        """Monthly listing returns the base event and its repeats."""
        body = {**EVENT_BODY, "recurrence": {"type": "weekly", "occurrences": 2}}
        client.post("/events", json=body, headers=factory.auth(alice))

        response = client.get("/events", params={"year": 2024, "month": 1}, headers=factory.auth(alice))

        assert response.status_code == 200
        events = response.json()["events"]
        assert [e["start_date"][:10] for e in events] == ["2024-01-10", "2024-01-17", "2024-01-24"]
        assert events[0]["is_recurring"] is False
        assert events[1]["is_recurring"] is True
        assert events[1]["id"] is None
        assert events[1]["original_event_id"] == events[0]["id"]
        assert response.json()["range"]["start"] == "2024-01-01T00:00:00"

    def test_list_by_range(self, client: TestClient, factory, alice):
        """An explicit range excludes events outside it."""
        factory.event(alice, title="Inside")
        factory.event(
            alice,
            title="Outside",
            start_date=datetime(2024, 1, 11, 9, 0),
            end_date=datetime(2024, 1, 11, 10, 0),
        )
        params = {"startDate": "2024-01-10T00:00:00", "endDate": "2024-01-10T23:59:59"}

        response = client.get("/events", params=params, headers=factory.auth(alice))

        assert [e["title"] for e in response.json()["events"]] == ["Inside"]

    def test_list_needs_both_bounds(self, client: TestClient, factory, alice):
        """startDate without endDate is a validation error."""
        response = client.get(
            "/events", params={"startDate": "2024-01-01T00:00:00"}, headers=factory.auth(alice)
        )
        assert response.status_code == 400
        assert response.json()["message"] == "startDate and endDate must be given together"

    def test_get_hidden_event_is_not_found(self, client: TestClient, factory, alice, bob):
        """Another user's private event looks absent."""
        event = factory.event(alice)

        own = client.get(f"/events/{event.id}", headers=factory.auth(alice))
        other = client.get(f"/events/{event.id}", headers=factory.auth(bob))

        assert own.status_code == 200
        assert other.status_code == 404

    def test_update_requires_edit_right(self, client: TestClient, factory, alice, bob):
        """Viewers of a public event cannot edit it; the creator can."""
        event = factory.event(alice, privacy=Privacy.PUBLIC)

        denied = client.put(f"/events/{event.id}", json={"title": "Hijacked"}, headers=factory.auth(bob))
        allowed = client.put(f"/events/{event.id}", json={"title": " Checkup "}, headers=factory.auth(alice))

        assert denied.status_code == 403
        assert allowed.status_code == 200
        assert allowed.json()["event"]["title"] == "Checkup"

    def test_update_rejects_inverted_dates(self, client: TestClient, factory, alice):
        """A new end before the stored start is refused."""
        event = factory.event(alice)

        response = client.put(
            f"/events/{event.id}", json={"end_date": "2024-01-09T08:00:00"}, headers=factory.auth(alice)
        )

        assert response.status_code == 400

    def test_share_grants_edit(self, client: TestClient, factory, alice, bob):
        """A share with can_edit lets the recipient edit."""
        event = factory.event(alice, privacy=Privacy.SHARED)

        shared = client.post(
            f"/events/{event.id}/share",
            json={"user_id": str(bob.id), "can_edit": True},
            headers=factory.auth(alice),
        )
        edited = client.put(f"/events/{event.id}", json={"location": "Room 4"}, headers=factory.auth(bob))

        assert shared.status_code == 200
        assert shared.json()["event"]["shared_with"][0]["can_edit"] is True
        assert edited.status_code == 200
        assert edited.json()["event"]["location"] == "Room 4"

    def test_unshare_hides_event(self, client: TestClient, factory, alice, bob):
        """Removing a share removes visibility."""
        event = factory.event(alice, privacy=Privacy.SHARED)
        client.post(f"/events/{event.id}/share", json={"user_id": str(bob.id)}, headers=factory.auth(alice))

        response = client.delete(f"/events/{event.id}/share/{bob.id}", headers=factory.auth(alice))

        assert response.status_code == 200
        assert response.json()["event"]["shared_with"] == []
        assert client.get(f"/events/{event.id}", headers=factory.auth(bob)).status_code == 404

    def test_only_creator_shares(self, client: TestClient, factory, alice, bob, carol):
        """Share recipients cannot reshare."""
        event = factory.event(alice, privacy=Privacy.SHARED)
        client.post(f"/events/{event.id}/share", json={"user_id": str(bob.id)}, headers=factory.auth(alice))

        response = client.post(
            f"/events/{event.id}/share", json={"user_id": str(carol.id)}, headers=factory.auth(bob)
        )

        assert response.status_code == 403

    def test_delete_is_soft(self, client: TestClient, session: Session, factory, alice):
        """Deleted events disappear from the API but keep their row."""
        event = factory.event(alice)

        response = client.delete(f"/events/{event.id}", headers=factory.auth(alice))

        assert response.status_code == 200
        assert client.get(f"/events/{event.id}", headers=factory.auth(alice)).status_code == 404
        session.refresh(event)
        assert event.is_deleted is True

    def test_occurs_on(self, client: TestClient, factory, alice):
        """occurs-on answers for the base day and for repeats."""
        body = {**EVENT_BODY, "recurrence": {"type": "weekly", "interval": 2}}
        event_id = client.post("/events", json=body, headers=factory.auth(alice)).json()["event"]["id"]

        def occurs(day):
            response = client.get(
                f"/events/{event_id}/occurs-on", params={"date": day}, headers=factory.auth(alice)
            )
            return response.json()["occurs"]

        assert occurs("2024-01-10")
        assert occurs("2024-01-24")
        assert not occurs("2024-01-17")


class TestGroupRoutes:
    """Tests for /groups."""

    def test_create_and_list(self, client: TestClient, factory, alice):
        """The creator becomes owner and sees the group in their list."""
        response = client.post(
            "/groups",
            json={"name": "  Hikers ", "visibility": "public", "settings": {"require_event_approval": True}},
            headers=factory.auth(alice),
        )

        assert response.status_code == 201
        group = response.json()["group"]
        assert group["name"] == "Hikers"
        assert group["user_role"] == "owner"
        assert group["member_count"] == 1
        assert group["settings"]["require_event_approval"] is True
        listed = client.get("/groups", headers=factory.auth(alice)).json()["groups"]
        assert [g["id"] for g in listed] == [group["id"]]

    def test_list_filters_by_role(self, client: TestClient, factory, group, alice, bob):
        """The role filter narrows the caller's groups."""
        other = factory.group(bob, name="Chess")
        factory.member(other, alice, Role.VIEWER)

        response = client.get("/groups", params={"role": "viewer"}, headers=factory.auth(alice))

        assert [g["name"] for g in response.json()["groups"]] == ["Chess"]

    def test_search_public_groups(self, client: TestClient, factory, alice, bob):
        """Only active public groups match a search."""
        factory.group(alice, name="Hiking Club", visibility=GroupVisibility.PUBLIC)
        factory.group(alice, name="Secret Hiking", visibility=GroupVisibility.PRIVATE)

        response = client.get("/groups/search", params={"query": "hiking"}, headers=factory.auth(bob))

        assert [g["name"] for g in response.json()["groups"]] == ["Hiking Club"]
        assert response.json()["groups"][0]["invite_code"] is None

    def test_search_needs_query(self, client: TestClient, factory, alice):
        """An empty search is a validation error."""
        response = client.get("/groups/search", headers=factory.auth(alice))
        assert response.status_code == 400

    def test_private_group_detail(self, client: TestClient, factory, group, alice, bob):
        """Private group details are for members only."""
        member = client.get(f"/groups/{group.id}", headers=factory.auth(alice))
        outsider = client.get(f"/groups/{group.id}", headers=factory.auth(bob))

        assert member.status_code == 200
        assert member.json()["group"]["is_member"] is True
        owner = member.json()["group"]["members"][0]
        assert owner["role"] == "owner"
        assert "delete_group" in owner["permissions"]
        assert outsider.status_code == 403

    def test_update_requires_edit_group(self, client: TestClient, factory, group, alice, bob):
        """Members cannot edit the group; the owner can."""
        factory.member(group, bob)

        denied = client.put(f"/groups/{group.id}", json={"name": "Renamed"}, headers=factory.auth(bob))
        allowed = client.put(f"/groups/{group.id}", json={"name": "Renamed"}, headers=factory.auth(alice))

        assert denied.status_code == 403
        assert allowed.json()["group"]["name"] == "Renamed"
        assert allowed.json()["group"]["user_role"] == "owner"

    def test_delete_cascades(self, client: TestClient, session: Session, factory, group, alice, bob):
        """Deleting a group hides it, its events and its memberships."""
        factory.member(group, bob)
        event = factory.event(alice, group_id=group.id, privacy=Privacy.GROUP_ONLY)

        denied = client.delete(f"/groups/{group.id}", headers=factory.auth(bob))
        response = client.delete(f"/groups/{group.id}", headers=factory.auth(alice))

        assert denied.status_code == 403
        assert response.status_code == 200
        assert client.get(f"/groups/{group.id}", headers=factory.auth(alice)).status_code == 404
        assert client.get("/groups", headers=factory.auth(bob)).json()["groups"] == []
        session.refresh(event)
        assert event.is_deleted is True

    def test_remove_member(self, client: TestClient, session: Session, factory, group, alice, bob):
        """Owners can remove members; the count follows."""
        membership = factory.member(group, bob)

        response = client.delete(f"/groups/{group.id}/members/{bob.id}", headers=factory.auth(alice))

        assert response.status_code == 200
        session.refresh(membership)
        session.refresh(group)
        assert membership.status == MemberStatus.INACTIVE
        assert group.member_count == 1

    def test_creator_cannot_be_removed(self, client: TestClient, factory, group, alice, bob):
        """Even an admin cannot remove the creator."""
        factory.member(group, bob, Role.ADMIN)

        response = client.delete(f"/groups/{group.id}/members/{alice.id}", headers=factory.auth(bob))

        assert response.status_code == 400

    def test_change_role(self, client: TestClient, factory, group, alice, bob):
        """Roles can be changed, but never to owner."""
        factory.member(group, bob)

        promoted = client.put(
            f"/groups/{group.id}/members/{bob.id}/role", json={"role": "admin"}, headers=factory.auth(alice)
        )
        to_owner = client.put(
            f"/groups/{group.id}/members/{bob.id}/role", json={"role": "owner"}, headers=factory.auth(alice)
        )

        assert promoted.status_code == 200
        assert promoted.json()["member"]["role"] == "admin"
        assert "edit_event" in promoted.json()["member"]["permissions"]
        assert to_owner.status_code == 400

    def test_leave(self, client: TestClient, session: Session, factory, group, alice, bob):
        """Members can leave; the creator cannot."""
        factory.member(group, bob)

        left = client.post(f"/groups/{group.id}/leave", headers=factory.auth(bob))
        again = client.post(f"/groups/{group.id}/leave", headers=factory.auth(bob))
        creator = client.post(f"/groups/{group.id}/leave", headers=factory.auth(alice))

        assert left.status_code == 200
        assert again.status_code == 404
        assert creator.status_code == 400
        membership = session.exec(select(GroupMember).where(GroupMember.user_id == bob.id)).one()
        assert membership.status == MemberStatus.INACTIVE

"""Tests for the role capability matrix."""

import pytest
from sqlmodel import Session

from groupcal.core.errors import ForbiddenError
from groupcal.groups.permissions import (
    Capability,
    capabilities_for,
    check_user_permission,
    has_capability,
    require_capability,
)
from groupcal.models import MemberStatus, Role


class TestCapabilityMatrix:
    """Tests for has_capability."""

    @pytest.mark.parametrize("action", list(Capability))
    def test_owner_has_everything(self, action):
        """Owners hold every capability."""
        assert has_capability(Role.OWNER, action)

    def test_admin_cannot_delete_group(self):
        """Admins hold everything except deleting the group."""
        assert has_capability(Role.ADMIN, Capability.EDIT_EVENT)
        assert has_capability(Role.ADMIN, Capability.REMOVE_MEMBER)
        assert not has_capability(Role.ADMIN, Capability.DELETE_GROUP)

    def test_member_can_view_and_create(self):
        """Members may view and create events only."""
        assert capabilities_for(Role.MEMBER) == {Capability.VIEW, Capability.CREATE_EVENT}

    def test_viewer_can_only_view(self):
        """Viewers may only view."""
        assert capabilities_for(Role.VIEWER) == {Capability.VIEW}
        assert not has_capability(Role.VIEWER, "create_event")

    def test_unknown_action_is_denied(self):
        """Actions outside the matrix are never granted."""
        assert not has_capability(Role.OWNER, "launch_rockets")
        assert not has_capability(None, Capability.VIEW)


class TestMemberPermission:
    """Tests for capability checks against stored memberships."""

    def test_active_member_checks_role(self, session: Session, factory, group, bob):
        """An active member gets exactly their role's capabilities."""
        factory.member(group, bob, Role.MEMBER)

        assert check_user_permission(session, group, bob.id, Capability.CREATE_EVENT)
        assert not check_user_permission(session, group, bob.id, Capability.EDIT_EVENT)

    @pytest.mark.parametrize(
        "status", [MemberStatus.PENDING, MemberStatus.INACTIVE, MemberStatus.BANNED]
    )
    def test_non_active_member_has_nothing(self, session: Session, factory, group, bob, status):
        """Pending, inactive and banned members hold no capabilities."""
        membership = factory.member(group, bob, Role.ADMIN)
        membership.status = status
        session.add(membership)
        session.commit()

        assert not check_user_permission(session, group, bob.id, Capability.VIEW)

    def test_non_member_has_nothing(self, session: Session, group, carol):
        """Users without a membership row hold no capabilities."""
        assert not check_user_permission(session, group, carol.id, Capability.VIEW)

    def test_creator_passes_even_if_role_drifted(self, session: Session, group, alice):
        """The group creator keeps every capability whatever the stored role says."""
        membership = require_capability(session, group, alice.id, Capability.DELETE_GROUP)
        membership.role = Role.VIEWER
        session.add(membership)
        session.commit()

        assert check_user_permission(session, group, alice.id, Capability.DELETE_GROUP)

    def test_require_capability_raises(self, session: Session, factory, group, bob):
        """require_capability raises ForbiddenError when denied."""
        factory.member(group, bob, Role.VIEWER)

        with pytest.raises(ForbiddenError):
            require_capability(session, group, bob.id, Capability.CREATE_EVENT)

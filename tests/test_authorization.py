"""
Authorization resolver tests.

Covers:
  - the three grant sources and their order
  - project scoping of user / project grants
  - expiry, inactive users, roles and allocations
  - allocation tie-break
  - project membership (owner OR active allocation)
  - persistence errors propagate instead of denying
"""

from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from defect_tracker.core.exceptions import NotFoundError, ValidationError
from defect_tracker.models import db
from defect_tracker.models.auth import GroupPrivilege, ProjectUserPrivilege
from defect_tracker.services import authorization
from defect_tracker.services.authorization import (
    accessible_project_ids,
    authorize,
    explain,
    find_active_allocation_with_role,
    is_project_member,
)


def _today():
    return datetime.now(timezone.utc).date()


# ═══════════════════════════════════════════════════════════════
# Grant sources
# ═══════════════════════════════════════════════════════════════

class TestGroupPrivilege:
    def test_role_grant_allows_then_deactivation_denies(self, seeded, make_user, make_project, allocate):
        owner = make_user("Olga")
        dev = make_user("Dev")
        project = make_project(owner)
        allocate(dev, project, seeded.role("Developer"))

        assert authorize(dev.id, "defects", "UPDATE", project.id) is True
        assert explain(dev.id, "defects", "UPDATE", project.id)["decision"] == "group_privilege"

        gp = (
            GroupPrivilege.query
            .filter_by(role_id=seeded.role("Developer").id,
                       privilege_id=seeded.privilege("defects", "UPDATE").id)
            .one()
        )
        gp.is_active = False
        db.session.commit()

        assert authorize(dev.id, "defects", "UPDATE", project.id) is False

    def test_role_without_privilege_denies(self, seeded, make_user, make_project, allocate):
        owner = make_user()
        dev = make_user()
        project = make_project(owner)
        allocate(dev, project, seeded.role("Developer"))

        assert authorize(dev.id, "defects", "DELETE", project.id) is False

    def test_inactive_role_abstains(self, seeded, make_user, make_project, allocate):
        owner = make_user()
        dev = make_user()
        project = make_project(owner)
        role = seeded.role("Developer")
        allocate(dev, project, role)
        role.is_active = False
        db.session.commit()

        assert authorize(dev.id, "defects", "READ", project.id) is False

    def test_allocation_on_other_project_does_not_grant(self, seeded, make_user, make_project, allocate):
        owner = make_user()
        dev = make_user()
        a = make_project(owner, "A")
        b = make_project(owner, "B")
        allocate(dev, a, seeded.role("Tester"))

        assert authorize(dev.id, "defects", "CREATE", a.id) is True
        assert authorize(dev.id, "defects", "CREATE", b.id) is False

    def test_unscoped_check_uses_any_active_allocation(self, seeded, make_user, make_project, allocate):
        owner = make_user()
        tester = make_user()
        allocate(tester, make_project(owner), seeded.role("Tester"))

        assert authorize(tester.id, "defects", "CREATE") is True

    def test_active_flag_alone_marks_membership(self, seeded, make_user, make_project, allocate):
        owner = make_user()
        future = make_user()
        lapsed = make_user()
        project = make_project(owner)
        allocate(future, project, seeded.role("Tester"), start_date=_today() + timedelta(days=3))
        allocate(lapsed, project, seeded.role("Tester"),
                 start_date=_today() - timedelta(days=30), end_date=_today() - timedelta(days=1))

        assert authorize(future.id, "defects", "READ", project.id) is True
        assert authorize(lapsed.id, "defects", "READ", project.id) is True
        assert is_project_member(future.id, project.id) is True
        assert is_project_member(lapsed.id, project.id) is True

    def test_deactivated_allocation_is_ignored(self, seeded, make_user, make_project, allocate):
        owner = make_user()
        dev = make_user()
        project = make_project(owner)
        allocation = allocate(dev, project, seeded.role("Developer"))
        allocation.is_active = False
        db.session.commit()

        assert authorize(dev.id, "defects", "READ", project.id) is False
        assert is_project_member(dev.id, project.id) is False


class TestUserPrivilege:
    def test_scoped_grant_does_not_leak_to_other_project(self, seeded, make_user, make_project, grant):
        owner = make_user()
        user = make_user()
        a = make_project(owner, "A")
        b = make_project(owner, "B")
        grant(user, "defects", "DELETE", project=a)

        assert authorize(user.id, "defects", "DELETE", a.id) is True
        assert authorize(user.id, "defects", "DELETE", b.id) is False

    def test_project_independent_grant_matches_everywhere(self, seeded, make_user, make_project, grant):
        owner = make_user()
        user = make_user()
        project = make_project(owner)
        grant(user, "users", "READ")

        assert authorize(user.id, "users", "READ") is True
        assert authorize(user.id, "users", "READ", project.id) is True

    def test_scoped_grant_matches_unscoped_check(self, seeded, make_user, make_project, grant):
        owner = make_user()
        user = make_user()
        grant(user, "projects", "READ", project=make_project(owner))

        assert authorize(user.id, "projects", "READ") is True

    def test_expired_grant_denies(self, seeded, make_user, grant):
        user = make_user()
        grant(user, "users", "READ", expires_at=datetime.now(timezone.utc) - timedelta(minutes=1))

        assert authorize(user.id, "users", "READ") is False

    def test_future_expiry_allows(self, seeded, make_user, grant):
        user = make_user()
        grant(user, "users", "READ", expires_at=datetime.now(timezone.utc) + timedelta(days=1))

        assert authorize(user.id, "users", "READ") is True

    def test_inactive_grant_denies(self, seeded, make_user, grant):
        user = make_user()
        grant(user, "users", "READ", is_active=False)

        assert authorize(user.id, "users", "READ") is False

    def test_inactive_privilege_denies(self, seeded, make_user, grant):
        user = make_user()
        grant(user, "users", "READ")
        seeded.privilege("users", "READ").is_active = False
        db.session.commit()

        assert authorize(user.id, "users", "READ") is False


class TestProjectPrivilege:
    def test_project_grant_needs_project_id(self, seeded, make_user, make_project):
        owner = make_user()
        user = make_user()
        project = make_project(owner)
        db.session.add(ProjectUserPrivilege(
            user_id=user.id, project_id=project.id,
            privilege_id=seeded.privilege("releases", "UPDATE").id,
        ))
        db.session.commit()

        assert explain(user.id, "releases", "UPDATE", project.id)["decision"] == "project_privilege"
        assert authorize(user.id, "releases", "UPDATE") is False


# ═══════════════════════════════════════════════════════════════
# Resolution order & edge cases
# ═══════════════════════════════════════════════════════════════

class TestResolution:
    def test_user_privilege_is_consulted_first(self, seeded, make_user, make_project, allocate, grant):
        owner = make_user()
        dev = make_user()
        project = make_project(owner)
        allocate(dev, project, seeded.role("Developer"))
        grant(dev, "defects", "READ")

        result = explain(dev.id, "defects", "READ", project.id)
        assert result["allowed"] is True
        assert result["decision"] == "user_privilege"

    def test_no_grant_denies(self, seeded, make_user):
        user = make_user()
        result = explain(user.id, "projects", "CREATE")
        assert result == {
            "allowed": False,
            "decision": "deny",
            "module": "projects",
            "action": "CREATE",
            "project_id": None,
        }

    def test_action_is_case_insensitive(self, seeded, make_user, grant):
        user = make_user()
        grant(user, "users", "READ")
        assert authorize(user.id, "users", "read") is True

    def test_unknown_action_rejected(self, seeded, make_user):
        user = make_user()
        with pytest.raises(ValidationError):
            authorize(user.id, "users", "APPROVE")

    def test_inactive_user_denied_regardless_of_grants(self, seeded, make_user, grant):
        user = make_user(is_active=False)
        grant(user, "users", "READ")

        result = explain(user.id, "users", "READ")
        assert result["allowed"] is False
        assert result["decision"] == "deny_inactive_user"

    def test_tie_break_prefers_latest_start(self, seeded, make_user, make_project, allocate):
        owner = make_user()
        user = make_user()
        project = make_project(owner)
        # Legacy data: two active allocations for the same (user, project)
        allocate(user, project, seeded.role("Admin"), start_date=_today() - timedelta(days=10))
        newer = allocate(user, project, seeded.role("Developer"), start_date=_today() - timedelta(days=2))

        assert find_active_allocation_with_role(user.id, project.id).id == newer.id
        assert authorize(user.id, "defects", "DELETE", project.id) is False

    def test_tie_break_same_start_prefers_highest_id(self, seeded, make_user, make_project, allocate):
        owner = make_user()
        user = make_user()
        project = make_project(owner)
        start = _today() - timedelta(days=1)
        allocate(user, project, seeded.role("Developer"), start_date=start)
        second = allocate(user, project, seeded.role("Admin"), start_date=start)

        assert find_active_allocation_with_role(user.id, project.id).id == second.id
        assert authorize(user.id, "defects", "DELETE", project.id) is True

    def test_persistence_error_propagates(self, seeded, make_user, monkeypatch):
        user = make_user()

        def _boom(*args, **kwargs):
            raise OperationalError("SELECT 1", {}, Exception("database is locked"))

        monkeypatch.setattr(authorization, "find_active_user_privilege", _boom)
        with pytest.raises(OperationalError):
            authorize(user.id, "users", "READ")


# ═══════════════════════════════════════════════════════════════
# Membership
# ═══════════════════════════════════════════════════════════════

class TestMembership:
    def test_owner_is_member(self, make_user, make_project):
        owner = make_user()
        project = make_project(owner)
        assert is_project_member(owner.id, project.id) is True

    def test_allocated_user_is_member(self, seeded, make_user, make_project, allocate):
        owner = make_user()
        dev = make_user()
        project = make_project(owner)
        allocate(dev, project, seeded.role("Developer"))
        assert is_project_member(dev.id, project.id) is True

    def test_stranger_is_not_member(self, make_user, make_project):
        owner = make_user()
        stranger = make_user()
        project = make_project(owner)
        assert is_project_member(stranger.id, project.id) is False

    def test_deallocated_user_is_not_member(self, seeded, make_user, make_project, allocate):
        owner = make_user()
        dev = make_user()
        project = make_project(owner)
        allocate(dev, project, seeded.role("Developer"), is_active=False)
        assert is_project_member(dev.id, project.id) is False

    def test_missing_project_raises_not_found(self, make_user):
        user = make_user()
        with pytest.raises(NotFoundError):
            is_project_member(user.id, 9999)

    def test_inactive_project_raises_not_found(self, make_user, make_project):
        owner = make_user()
        project = make_project(owner, is_active=False)
        with pytest.raises(NotFoundError):
            is_project_member(owner.id, project.id)

    def test_accessible_project_ids(self, seeded, make_user, make_project, allocate):
        owner = make_user()
        dev = make_user()
        owned = make_project(dev, "Own")
        allocated = make_project(owner, "Allocated")
        make_project(owner, "Other")
        allocate(dev, allocated, seeded.role("Developer"), start_date=date.today() - timedelta(days=1))

        assert accessible_project_ids(dev.id) == sorted([owned.id, allocated.id])

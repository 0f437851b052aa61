"""Seed data and CLI command tests."""

from defect_tracker.models.auth import GroupPrivilege, Privilege, Role, User, UserPrivilege
from defect_tracker.services.authorization import authorize
from defect_tracker.services.seed_service import seed_defaults


def test_seed_is_idempotent():
    first = seed_defaults()
    assert first["severities"] == 3
    assert first["release_types"] == 4
    assert first["privileges"] == Privilege.query.count()

    second = seed_defaults()
    assert all(count == 0 for count in second.values())
    assert Role.query.count() == 4


def test_admin_role_holds_every_privilege():
    seed_defaults()
    admin = Role.query.filter_by(name="Admin").one()
    assert GroupPrivilege.query.filter_by(role_id=admin.id).count() == Privilege.query.count()


def test_create_admin_command(app):
    runner = app.test_cli_runner()
    result = runner.invoke(args=[
        "create-admin", "--email", "root@example.com", "--password", "Sup3r-secret",
    ])
    assert result.exit_code == 0, result.output
    assert "created" in result.output

    user = User.query.filter_by(email="root@example.com").one()
    assert UserPrivilege.query.filter_by(user_id=user.id).count() == Privilege.query.count()
    assert authorize(user.id, "users", "MANAGE") is True


def test_seed_defaults_command(app):
    result = app.test_cli_runner().invoke(args=["seed-defaults"])
    assert result.exit_code == 0
    assert "Seeded" in result.output

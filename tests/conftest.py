"""
Shared pytest fixtures for the Defect Tracker test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test app context + table recreate (autouse)
    - client: Flask test client (function-scoped)
    - seeded: default severities, statuses, release types, roles and privileges
    - make_user / make_project / allocate / grant / make_defect: small factories
    - auth_headers: Bearer header for a user
"""

import pytest

from defect_tracker import create_app
from defect_tracker.models import db as _db
from defect_tracker.models.auth import Privilege, Role, User, UserPrivilege
from defect_tracker.models.defect import Defect, DefectStatus, DefectType, Priority, Severity
from defect_tracker.models.project import Project, ProjectAllocation
from defect_tracker.models.release import ReleaseType
from defect_tracker.services.jwt_service import generate_access_token
from defect_tracker.services.seed_service import seed_defaults
from defect_tracker.utils.crypto import hash_password

DEFAULT_PASSWORD = "Passw0rd!secure"


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Reference data ───────────────────────────────────────────────────────


class Seeded:
    """Name-based access to the seeded reference rows."""

    def severity(self, name):
        return Severity.query.filter_by(name=name).one()

    def status(self, name):
        return DefectStatus.query.filter_by(name=name).one()

    def priority(self, name):
        return Priority.query.filter_by(name=name).one()

    def defect_type(self, name):
        return DefectType.query.filter_by(name=name).one()

    def release_type(self, name):
        return ReleaseType.query.filter_by(name=name).one()

    def role(self, name):
        return Role.query.filter_by(name=name).one()

    def privilege(self, module, action):
        return Privilege.query.filter_by(module=module, action=action).one()


@pytest.fixture()
def seeded():
    seed_defaults()
    return Seeded()


# ── Factories ────────────────────────────────────────────────────────────


@pytest.fixture()
def make_user():
    counter = {"n": 0}

    def _make(first_name="Test", last_name=None, *, email=None, is_active=True,
              password=DEFAULT_PASSWORD):
        counter["n"] += 1
        n = counter["n"]
        user = User(
            username=f"TU{n:04d}",
            first_name=first_name,
            last_name=last_name or f"User{n}",
            email=email or f"user{n}@example.com",
            password_hash=hash_password(password),
            is_active=is_active,
        )
        _db.session.add(user)
        _db.session.commit()
        return user
    return _make


@pytest.fixture()
def make_project():
    def _make(owner, name="Checkout Revamp", **fields):
        project = Project(name=name, user_id=owner.id, **fields)
        _db.session.add(project)
        _db.session.commit()
        return project
    return _make


@pytest.fixture()
def allocate():
    def _allocate(user, project, role, **fields):
        allocation = ProjectAllocation(
            user_id=user.id, project_id=project.id, role_id=role.id, **fields,
        )
        _db.session.add(allocation)
        _db.session.commit()
        return allocation
    return _allocate


@pytest.fixture()
def grant(seeded):
    """Direct UserPrivilege grant by (module, action)."""
    def _grant(user, module, action, project=None, **fields):
        row = UserPrivilege(
            user_id=user.id,
            privilege_id=seeded.privilege(module, action).id,
            project_id=project.id if project is not None else None,
            **fields,
        )
        _db.session.add(row)
        _db.session.commit()
        return row
    return _grant


@pytest.fixture()
def auth_headers():
    def _headers(user):
        return {"Authorization": f"Bearer {generate_access_token(user.id, user.username)}"}
    return _headers


@pytest.fixture()
def admin(seeded, make_user, grant):
    """User holding every privilege project-independently."""
    user = make_user("Ada", "Admin", email="admin@example.com")
    for privilege in Privilege.query.all():
        grant(user, privilege.module, privilege.action)
    return user


@pytest.fixture()
def make_defect(seeded):
    """Insert a defect directly; severity / status given by name."""
    def _make(project, *, severity="Medium", status="New", reporter=None, **fields):
        defect = Defect(
            project_id=project.id,
            title=fields.pop("title", "Checkout button unresponsive"),
            description=fields.pop("description", "Clicking pay does nothing"),
            severity_id=seeded.severity(severity).id,
            defect_status_id=seeded.status(status).id,
            priority_id=fields.pop("priority_id", seeded.priority("Medium").id),
            type_id=fields.pop("type_id", seeded.defect_type("Functional").id),
            assigned_by=reporter.id if reporter is not None else project.user_id,
            **fields,
        )
        _db.session.add(defect)
        _db.session.commit()
        return defect
    return _make

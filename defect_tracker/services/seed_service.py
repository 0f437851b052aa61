"""
Seed default reference data: severities, priorities, statuses, defect types,
release types, roles, privileges and role bundles.

Usage:
    flask --app wsgi seed-defaults
    flask --app wsgi create-admin --email admin@example.com --password ...

Idempotent: rows are matched by name (privileges by module/action) and
only missing ones are inserted.
"""

import logging

from defect_tracker.models import db
from defect_tracker.models.auth import (
    PRIVILEGE_ACTIONS,
    GroupPrivilege,
    Privilege,
    Role,
    User,
    UserPrivilege,
)
from defect_tracker.models.defect import DefectStatus, DefectType, Priority, Severity
from defect_tracker.models.release import ReleaseType

logger = logging.getLogger(__name__)

# (name, code, level, color)
SEVERITIES = [
    ("High", "high", 3, "#dc2626"),
    ("Medium", "medium", 2, "#f59e0b"),
    ("Low", "low", 1, "#10b981"),
]

# (name, level, color)
PRIORITIES = [
    ("Critical", 4, "#7f1d1d"),
    ("High", 3, "#dc2626"),
    ("Medium", 2, "#f59e0b"),
    ("Low", 1, "#10b981"),
]

# (name, is_closed, color, order)
STATUSES = [
    ("New", False, "#3b82f6", 1),
    ("Open", False, "#6366f1", 2),
    ("In Progress", False, "#f59e0b", 3),
    ("Fixed", False, "#10b981", 4),
    ("Reopened", False, "#ef4444", 5),
    ("Closed", True, "#64748b", 6),
]

DEFECT_TYPES = ["Functional", "UI", "Performance", "Security", "Usability", "Data"]

# (name, description)
RELEASE_TYPES = [
    ("Major Release", "Major version release with significant changes"),
    ("Minor Release", "Minor version release with bug fixes"),
    ("Hotfix", "Emergency fix release"),
    ("Beta Release", "Beta version for testing"),
]

PRIVILEGE_MODULES = ["projects", "defects", "users", "releases"]

# role → {module: actions}; "*" means every action
ROLE_PRIVILEGES = {
    "Admin": {module: "*" for module in PRIVILEGE_MODULES},
    "Project Manager": {
        "projects": "*",
        "defects": "*",
        "users": ("READ",),
        "releases": "*",
    },
    "Developer": {
        "projects": ("READ",),
        "defects": ("READ", "UPDATE"),
        "releases": ("READ",),
    },
    "Tester": {
        "projects": ("READ",),
        "defects": ("CREATE", "READ", "UPDATE"),
        "releases": ("READ",),
    },
}


def _get_or_create(model, defaults=None, **lookup):
    row = model.query.filter_by(**lookup).first()
    if row is not None:
        return row, False
    row = model(**lookup, **(defaults or {}))
    db.session.add(row)
    db.session.flush()
    return row, True


def seed_defaults() -> dict:
    """Insert missing reference data and commit. Returns created counts."""
    created = {"severities": 0, "priorities": 0, "statuses": 0, "defect_types": 0,
               "release_types": 0, "roles": 0, "privileges": 0, "group_privileges": 0}

    for name, code, level, color in SEVERITIES:
        _, new = _get_or_create(Severity, {"code": code, "level": level, "color_code": color}, name=name)
        created["severities"] += new
    for name, level, color in PRIORITIES:
        _, new = _get_or_create(Priority, {"level": level, "color_code": color}, name=name)
        created["priorities"] += new
    for name, is_closed, color, order in STATUSES:
        _, new = _get_or_create(
            DefectStatus,
            {"is_closed_status": is_closed, "color_code": color, "order_sequence": order},
            name=name,
        )
        created["statuses"] += new
    for name in DEFECT_TYPES:
        _, new = _get_or_create(DefectType, name=name)
        created["defect_types"] += new
    for name, description in RELEASE_TYPES:
        _, new = _get_or_create(ReleaseType, {"description": description}, name=name)
        created["release_types"] += new

    privileges = {}
    for module in PRIVILEGE_MODULES:
        for action in PRIVILEGE_ACTIONS:
            priv, new = _get_or_create(
                Privilege,
                {"name": f"{action.title()} {module.title()}",
                 "description": f"{action.title()} access to {module}"},
                module=module, action=action,
            )
            privileges[(module, action)] = priv
            created["privileges"] += new

    for role_name, grants in ROLE_PRIVILEGES.items():
        role, new = _get_or_create(Role, {"description": f"{role_name} (system role)"}, name=role_name)
        created["roles"] += new
        for module, actions in grants.items():
            for action in (PRIVILEGE_ACTIONS if actions == "*" else actions):
                _, new = _get_or_create(
                    GroupPrivilege, {"is_active": True},
                    role_id=role.id, privilege_id=privileges[(module, action)].id,
                )
                created["group_privileges"] += new

    db.session.commit()
    logger.info("Default data seeded: %s", created)
    return created


def grant_all_privileges(user: User) -> int:
    """Give ``user`` every active privilege as a project-independent grant."""
    count = 0
    for privilege in Privilege.query.filter_by(is_active=True).all():
        exists = UserPrivilege.query.filter_by(
            user_id=user.id, privilege_id=privilege.id, project_id=None, is_active=True,
        ).first()
        if exists is None:
            db.session.add(UserPrivilege(user_id=user.id, privilege_id=privilege.id))
            count += 1
    db.session.commit()
    logger.info("Granted %d privileges to user %s", count, user.id)
    return count

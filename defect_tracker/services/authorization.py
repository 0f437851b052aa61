"""
Authorization Service: cascading privilege resolution and project membership.

``authorize(user_id, module, action, project_id=None)`` answers "may this
user perform ``action`` on ``module`` (optionally inside one project)?".

Grant sources are consulted in a fixed order; the first one that allows
wins and nothing is aggregated:

  1. user_privilege     active UserPrivilege, not expired; a NULL project
                        scope matches any (or no) project
  2. project_privilege  active ProjectUserPrivilege for (user, project);
                        only when a project is given
  3. group_privilege    the user's active ProjectAllocation (for the project,
                        or any project when none is given) → active Role →
                        active GroupPrivilege
  4. otherwise deny

Each source returns ALLOW, DENY or ABSTAIN. A new source is added by
appending to ``GRANT_SOURCES``.

Every check is a fresh point lookup; there is no cache. Database errors
propagate to the caller (→ HTTP 500) and are never turned into a deny.

``is_project_member(user_id, project_id)`` is the coarser gate used before
``authorize`` on project-scoped routes: owner OR active allocation.
"""

import logging
from datetime import datetime, timezone

from defect_tracker.core.exceptions import NotFoundError, ValidationError
from defect_tracker.models import db
from defect_tracker.models.auth import (
    PRIVILEGE_ACTIONS,
    GroupPrivilege,
    Privilege,
    ProjectUserPrivilege,
    User,
    UserPrivilege,
)
from defect_tracker.models.project import Project, ProjectAllocation

logger = logging.getLogger(__name__)

ALLOW = "allow"
DENY = "deny"
ABSTAIN = "abstain"


def _normalise(module: str, action: str) -> tuple[str, str]:
    action = (action or "").upper()
    if action not in PRIVILEGE_ACTIONS:
        raise ValidationError(
            f"Unknown action '{action}'", details={"action": f"one of {', '.join(PRIVILEGE_ACTIONS)}"}
        )
    if not module:
        raise ValidationError("module is required", details={"module": "required"})
    return module, action


# ═══════════════════════════════════════════════════════════════
# Repository lookups
# ═══════════════════════════════════════════════════════════════
def find_active_user_privilege(
    user_id: int,
    module: str,
    action: str,
    project_id: int | None = None,
) -> UserPrivilege | None:
    """First active, unexpired UserPrivilege matching (module, action).

    With a project: the grant's scope must be that project or NULL.
    Without a project: any scope matches.
    """
    query = (
        UserPrivilege.query
        .join(Privilege, Privilege.id == UserPrivilege.privilege_id)
        .filter(
            UserPrivilege.user_id == user_id,
            UserPrivilege.is_active.is_(True),
            Privilege.is_active.is_(True),
            Privilege.module == module,
            Privilege.action == action,
        )
    )
    if project_id is not None:
        query = query.filter(
            (UserPrivilege.project_id == project_id) | (UserPrivilege.project_id.is_(None))
        )

    now = datetime.now(timezone.utc)
    for grant in query.order_by(UserPrivilege.id).all():
        if not grant.is_expired(now):
            return grant
    return None


def find_active_project_privilege(
    user_id: int,
    project_id: int,
    module: str,
    action: str,
) -> ProjectUserPrivilege | None:
    """Active ProjectUserPrivilege for (user, project) matching (module, action)."""
    return (
        ProjectUserPrivilege.query
        .join(Privilege, Privilege.id == ProjectUserPrivilege.privilege_id)
        .filter(
            ProjectUserPrivilege.user_id == user_id,
            ProjectUserPrivilege.project_id == project_id,
            ProjectUserPrivilege.is_active.is_(True),
            Privilege.is_active.is_(True),
            Privilege.module == module,
            Privilege.action == action,
        )
        .order_by(ProjectUserPrivilege.id)
        .first()
    )


def active_allocations_query(user_id: int, project_id: int | None = None):
    """Active allocations of the user; ``is_active`` alone marks current membership."""
    query = ProjectAllocation.query.filter(
        ProjectAllocation.user_id == user_id,
        ProjectAllocation.is_active.is_(True),
    )
    if project_id is not None:
        query = query.filter(ProjectAllocation.project_id == project_id)
    return query


def find_active_allocation_with_role(
    user_id: int,
    project_id: int | None = None,
) -> ProjectAllocation | None:
    """The user's current allocation (with its role loaded).

    Allocation writes keep at most one active row per (user, project); if
    legacy data holds several, the most recently started one wins, then the
    highest id.
    """
    return (
        active_allocations_query(user_id, project_id)
        .order_by(ProjectAllocation.start_date.desc(), ProjectAllocation.id.desc())
        .first()
    )


def find_group_privilege(role_id: int, module: str, action: str) -> GroupPrivilege | None:
    """Active GroupPrivilege on ``role_id`` matching (module, action)."""
    return (
        GroupPrivilege.query
        .join(Privilege, Privilege.id == GroupPrivilege.privilege_id)
        .filter(
            GroupPrivilege.role_id == role_id,
            GroupPrivilege.is_active.is_(True),
            Privilege.is_active.is_(True),
            Privilege.module == module,
            Privilege.action == action,
        )
        .first()
    )


# ═══════════════════════════════════════════════════════════════
# Grant sources
# ═══════════════════════════════════════════════════════════════
def _user_privilege_source(user_id, module, action, project_id):
    grant = find_active_user_privilege(user_id, module, action, project_id)
    return ALLOW if grant else ABSTAIN


def _project_privilege_source(user_id, module, action, project_id):
    if project_id is None:
        return ABSTAIN
    grant = find_active_project_privilege(user_id, project_id, module, action)
    return ALLOW if grant else ABSTAIN


def _group_privilege_source(user_id, module, action, project_id):
    allocation = find_active_allocation_with_role(user_id, project_id)
    if allocation is None or allocation.role is None or not allocation.role.is_active:
        return ABSTAIN
    grant = find_group_privilege(allocation.role_id, module, action)
    return ALLOW if grant else ABSTAIN


GRANT_SOURCES = (
    ("user_privilege", _user_privilege_source),
    ("project_privilege", _project_privilege_source),
    ("group_privilege", _group_privilege_source),
)


# ═══════════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════════
def explain(
    user_id: int,
    module: str,
    action: str,
    project_id: int | None = None,
) -> dict:
    """Resolve a privilege check and report which source decided it."""
    module, action = _normalise(module, action)
    result = {
        "allowed": False,
        "decision": "deny",
        "module": module,
        "action": action,
        "project_id": project_id,
    }

    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        result["decision"] = "deny_inactive_user"
        return result

    for name, source in GRANT_SOURCES:
        outcome = source(user_id, module, action, project_id)
        if outcome == ABSTAIN:
            continue
        result["allowed"] = outcome == ALLOW
        result["decision"] = name if outcome == ALLOW else f"deny_{name}"
        return result
    return result


def authorize(
    user_id: int,
    module: str,
    action: str,
    project_id: int | None = None,
) -> bool:
    """True if any grant source allows (module, action) for the user."""
    return explain(user_id, module, action, project_id)["allowed"]


def get_active_project(project_id: int) -> Project:
    """Return an active project or raise NotFoundError."""
    project = db.session.get(Project, project_id)
    if project is None or not project.is_active:
        raise NotFoundError(resource="Project", resource_id=project_id)
    return project


def is_project_member(user_id: int, project_id: int) -> bool:
    """Owner of the project, or holder of an active allocation on it."""
    project = get_active_project(project_id)
    if project.user_id == user_id:
        return True
    return active_allocations_query(user_id, project_id).first() is not None


def accessible_project_ids(user_id: int) -> list[int]:
    """IDs of active projects the user owns or is allocated to."""
    allocated = [a.project_id for a in active_allocations_query(user_id).all()]
    rows = (
        db.session.query(Project.id)
        .filter(
            Project.is_active.is_(True),
            (Project.user_id == user_id) | (Project.id.in_(allocated)),
        )
        .all()
    )
    return sorted({pid for (pid,) in rows})

"""Privilege grant management.

Three grant tables feed the authorization resolver:

    UserPrivilege         (user, privilege, optional project, optional expiry)
    ProjectUserPrivilege  (user, project, privilege)
    GroupPrivilege        (role, privilege)

At most one *active* row may exist per grant key; a duplicate grant raises
ConflictError. Revoking deactivates the row instead of deleting it.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from defect_tracker.core.exceptions import ConflictError, NotFoundError, ValidationError
from defect_tracker.models import db
from defect_tracker.models.auth import (
    GroupPrivilege,
    Privilege,
    ProjectUserPrivilege,
    Role,
    User,
    UserPrivilege,
)
from defect_tracker.services.authorization import get_active_project
from defect_tracker.utils.helpers import parse_datetime, parse_int, require_fields

logger = logging.getLogger(__name__)


def _active_user(value) -> User:
    user_id = parse_int(value, "user_id")
    user = db.session.get(User, user_id) if user_id is not None else None
    if user is None or not user.is_active:
        raise ValidationError("Unknown or inactive user", details={"user_id": "not found"})
    return user


def _active_privilege(value) -> Privilege:
    privilege_id = parse_int(value, "privilege_id")
    privilege = db.session.get(Privilege, privilege_id) if privilege_id is not None else None
    if privilege is None or not privilege.is_active:
        raise ValidationError("Unknown or inactive privilege", details={"privilege_id": "not found"})
    return privilege


def _role(value) -> Role:
    role_id = parse_int(value, "role_id")
    role = db.session.get(Role, role_id) if role_id is not None else None
    if role is None:
        raise ValidationError("Unknown role", details={"role_id": "not found"})
    return role


def _utc(dt):
    if dt is not None and dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


# ── User privileges ──────────────────────────────────────────────────────


def list_user_privileges(*, user_id=None, project_id=None, include_inactive=False):
    query = UserPrivilege.query
    if user_id is not None:
        query = query.filter(UserPrivilege.user_id == user_id)
    if project_id is not None:
        query = query.filter(UserPrivilege.project_id == project_id)
    if not include_inactive:
        query = query.filter(UserPrivilege.is_active.is_(True))
    return query.order_by(UserPrivilege.id).all()


def grant_user_privilege(data: dict, *, granted_by: int) -> UserPrivilege:
    require_fields(data, "user_id", "privilege_id")
    user = _active_user(data["user_id"])
    privilege = _active_privilege(data["privilege_id"])
    project_id = parse_int(data.get("project_id"), "project_id")
    if project_id is not None:
        get_active_project(project_id)

    now = datetime.now(timezone.utc)
    expires_at = _utc(parse_datetime(data.get("expires_at"), "expires_at"))
    if expires_at is not None and expires_at <= now:
        raise ValidationError("expires_at must be in the future", details={"expires_at": "in the past"})

    existing = UserPrivilege.query.filter(
        UserPrivilege.user_id == user.id,
        UserPrivilege.privilege_id == privilege.id,
        UserPrivilege.is_active.is_(True),
        (UserPrivilege.project_id == project_id) if project_id is not None
        else UserPrivilege.project_id.is_(None),
    ).all()
    for row in existing:
        if not row.is_expired(now):
            raise ConflictError("UserPrivilege", "privilege", privilege.codename)
        # lapsed grants are retired so only one active row remains per key
        row.is_active = False

    grant = UserPrivilege(
        user_id=user.id,
        privilege_id=privilege.id,
        project_id=project_id,
        granted_by=granted_by,
        expires_at=expires_at,
        is_active=True,
    )
    db.session.add(grant)
    db.session.commit()
    logger.info("Privilege %s granted to user %s (project=%s) by %s",
                privilege.codename, user.id, project_id, granted_by)
    return grant


def revoke_user_privilege(grant_id: int, *, revoked_by: int) -> UserPrivilege:
    grant = db.session.get(UserPrivilege, grant_id)
    if grant is None or not grant.is_active:
        raise NotFoundError(resource="UserPrivilege", resource_id=grant_id)
    grant.is_active = False
    db.session.commit()
    logger.info("UserPrivilege %s revoked by %s", grant_id, revoked_by)
    return grant


# ── Project user privileges ──────────────────────────────────────────────


def list_project_user_privileges(*, project_id=None, user_id=None, include_inactive=False):
    query = ProjectUserPrivilege.query
    if project_id is not None:
        query = query.filter(ProjectUserPrivilege.project_id == project_id)
    if user_id is not None:
        query = query.filter(ProjectUserPrivilege.user_id == user_id)
    if not include_inactive:
        query = query.filter(ProjectUserPrivilege.is_active.is_(True))
    return query.order_by(ProjectUserPrivilege.id).all()


def grant_project_user_privilege(data: dict, *, granted_by: int) -> ProjectUserPrivilege:
    require_fields(data, "user_id", "project_id", "privilege_id")
    user = _active_user(data["user_id"])
    privilege = _active_privilege(data["privilege_id"])
    project = get_active_project(parse_int(data["project_id"], "project_id"))

    duplicate = ProjectUserPrivilege.query.filter_by(
        user_id=user.id, project_id=project.id, privilege_id=privilege.id, is_active=True,
    ).first()
    if duplicate is not None:
        raise ConflictError("ProjectUserPrivilege", "privilege", privilege.codename)

    grant = ProjectUserPrivilege(
        user_id=user.id,
        project_id=project.id,
        privilege_id=privilege.id,
        granted_by=granted_by,
        is_active=True,
    )
    db.session.add(grant)
    db.session.commit()
    logger.info("Project privilege %s granted to user %s on project %s by %s",
                privilege.codename, user.id, project.id, granted_by)
    return grant


def revoke_project_user_privilege(grant_id: int, *, revoked_by: int) -> ProjectUserPrivilege:
    grant = db.session.get(ProjectUserPrivilege, grant_id)
    if grant is None or not grant.is_active:
        raise NotFoundError(resource="ProjectUserPrivilege", resource_id=grant_id)
    grant.is_active = False
    db.session.commit()
    logger.info("ProjectUserPrivilege %s revoked by %s", grant_id, revoked_by)
    return grant


# ── Group (role) privileges ──────────────────────────────────────────────


def list_group_privileges(*, role_id=None, include_inactive=False):
    query = GroupPrivilege.query
    if role_id is not None:
        query = query.filter(GroupPrivilege.role_id == role_id)
    if not include_inactive:
        query = query.filter(GroupPrivilege.is_active.is_(True))
    return query.order_by(GroupPrivilege.role_id, GroupPrivilege.id).all()


def grant_group_privilege(data: dict, *, granted_by: int) -> GroupPrivilege:
    require_fields(data, "role_id", "privilege_id")
    role = _role(data["role_id"])
    privilege = _active_privilege(data["privilege_id"])

    duplicate = GroupPrivilege.query.filter_by(
        role_id=role.id, privilege_id=privilege.id, is_active=True,
    ).first()
    if duplicate is not None:
        raise ConflictError("GroupPrivilege", "privilege", privilege.codename)

    grant = GroupPrivilege(role_id=role.id, privilege_id=privilege.id, is_active=True)
    db.session.add(grant)
    db.session.commit()
    logger.info("Privilege %s added to role %s by %s", privilege.codename, role.name, granted_by)
    return grant


def revoke_group_privilege(grant_id: int, *, revoked_by: int) -> GroupPrivilege:
    grant = db.session.get(GroupPrivilege, grant_id)
    if grant is None or not grant.is_active:
        raise NotFoundError(resource="GroupPrivilege", resource_id=grant_id)
    grant.is_active = False
    db.session.commit()
    logger.info("GroupPrivilege %s revoked by %s", grant_id, revoked_by)
    return grant

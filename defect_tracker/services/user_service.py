"""User service: registration, login, account CRUD and email preferences.

Transaction policy: every mutating function commits its own transaction;
notification events are published only after that commit succeeds.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import or_

from defect_tracker.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from defect_tracker.models import db
from defect_tracker.models.auth import (
    Designation,
    GroupPrivilege,
    ProjectUserPrivilege,
    User,
    UserPrivilege,
)
from defect_tracker.models.notification import EMAIL_TYPES, EmailPreference
from defect_tracker.models.project import Project, ProjectAllocation
from defect_tracker.services.authorization import active_allocations_query
from defect_tracker.services.notification import NotificationDispatcher
from defect_tracker.utils.crypto import hash_password, verify_password
from defect_tracker.utils.helpers import parse_int, require_fields

logger = logging.getLogger(__name__)

USERNAME_PREFIX = "US"
MIN_PASSWORD_LENGTH = 8
_PHONE_RE = re.compile(r"^\+?[0-9 ()-]{6,30}$")


# ── Helpers ──────────────────────────────────────────────────────────────


def next_username() -> str:
    """US0001, US0002, ... derived from the highest existing user id."""
    last_id = db.session.query(db.func.max(User.id)).scalar() or 0
    return f"{USERNAME_PREFIX}{last_id + 1:04d}"


def normalize_email(raw: str | None) -> str:
    if not raw or not str(raw).strip():
        raise ValidationError("email is required", details={"email": "required"})
    try:
        info = validate_email(str(raw).strip(), check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValidationError(str(exc), details={"email": "invalid"}) from exc
    return info.normalized.lower()


def _check_password(password) -> str:
    if not password or len(str(password)) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
            details={"password": f"min {MIN_PASSWORD_LENGTH} characters"},
        )
    return str(password)


def _check_phone(phone):
    if phone in (None, ""):
        return None
    phone = str(phone).strip()
    if not _PHONE_RE.match(phone):
        raise ValidationError("Invalid phone number", details={"phone": "invalid"})
    return phone


def _ensure_email_free(email: str, exclude_user_id: int | None = None) -> None:
    query = User.query.filter(User.email == email)
    if exclude_user_id is not None:
        query = query.filter(User.id != exclude_user_id)
    if query.first() is not None:
        raise ConflictError("User", "email", email)


def _designation_id(value):
    designation_id = parse_int(value, "designation_id")
    if designation_id is not None and db.session.get(Designation, designation_id) is None:
        raise ValidationError("Unknown designation", details={"designation_id": "not found"})
    return designation_id


def get_user(user_id: int, *, include_inactive: bool = True) -> User:
    user = db.session.get(User, user_id)
    if user is None or (not include_inactive and not user.is_active):
        raise NotFoundError(resource="User", resource_id=user_id)
    return user


# ── Registration & authentication ────────────────────────────────────────


def create_user(data: dict, *, created_by: int | None = None, notify: bool = True) -> User:
    """Create a user account and publish USER_REGISTERED after commit."""
    require_fields(data, "first_name", "last_name", "email", "password")
    email = normalize_email(data.get("email"))
    password = _check_password(data.get("password"))
    _ensure_email_free(email)

    user = User(
        username=next_username(),
        first_name=str(data["first_name"]).strip(),
        last_name=str(data["last_name"]).strip(),
        email=email,
        password_hash=hash_password(password),
        phone=_check_phone(data.get("phone")),
        designation_id=_designation_id(data.get("designation_id")),
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    logger.info("User created id=%s username=%s by=%s", user.id, user.username, created_by)

    if notify:
        NotificationDispatcher.publish(
            "USER_REGISTERED", recipient_id=user.id,
            context={"username": user.username},
        )
    return user


def register(data: dict) -> User:
    return create_user(data)


def authenticate(login: str | None, password: str | None) -> User:
    """Resolve a username or email plus password to an active user.

    Unknown login and wrong password raise the same AuthenticationError;
    a correct password on an inactive account raises AuthorizationError.
    """
    if not login or not password:
        raise ValidationError(
            "Username/email and password are required",
            details={"username": "required", "password": "required"},
        )
    login = str(login).strip()
    user = User.query.filter(
        or_(User.username == login, User.email == login.lower())
    ).first()
    if user is None or not verify_password(str(password), user.password_hash):
        logger.warning("Failed login attempt for '%s'", login)
        raise AuthenticationError("Invalid credentials")
    if not user.is_active:
        logger.warning("Login attempt on inactive account id=%s", user.id)
        raise AuthorizationError("Account is deactivated")

    user.last_login_at = datetime.now(timezone.utc)
    db.session.commit()
    return user


def change_password(user: User, current_password, new_password) -> None:
    if not current_password or not verify_password(str(current_password), user.password_hash):
        raise AuthenticationError("Current password is incorrect")
    user.password_hash = hash_password(_check_password(new_password))
    db.session.commit()
    logger.info("Password changed for user id=%s", user.id)


def reset_password(user_id: int, new_password, *, changed_by: int) -> User:
    user = get_user(user_id)
    user.password_hash = hash_password(_check_password(new_password))
    db.session.commit()
    logger.info("Password reset for user id=%s by=%s", user.id, changed_by)
    return user


# ── CRUD ─────────────────────────────────────────────────────────────────


def list_users_query(*, search: str | None = None, is_active=None):
    query = User.query
    if search:
        term = f"%{search.strip()}%"
        query = query.filter(or_(
            User.first_name.ilike(term),
            User.last_name.ilike(term),
            User.email.ilike(term),
            User.username.ilike(term),
        ))
    if is_active is not None:
        query = query.filter(User.is_active.is_(is_active))
    return query.order_by(User.id)


def update_user(user_id: int, data: dict) -> User:
    user = get_user(user_id)
    if "email" in data:
        email = normalize_email(data.get("email"))
        _ensure_email_free(email, exclude_user_id=user.id)
        user.email = email
    for attr in ("first_name", "last_name"):
        if attr in data:
            value = str(data.get(attr) or "").strip()
            if not value:
                raise ValidationError(f"{attr} cannot be empty", details={attr: "required"})
            setattr(user, attr, value)
    if "phone" in data:
        user.phone = _check_phone(data.get("phone"))
    if "designation_id" in data:
        user.designation_id = _designation_id(data.get("designation_id"))
    db.session.commit()
    return user


def set_user_status(user_id: int, is_active, *, changed_by: int) -> User:
    if not isinstance(is_active, bool):
        raise ValidationError("is_active must be a boolean", details={"is_active": "boolean"})
    user = get_user(user_id)
    if user.id == changed_by and not is_active:
        raise ValidationError("You cannot deactivate your own account")
    user.is_active = is_active
    db.session.commit()
    logger.info("User id=%s is_active=%s by=%s", user.id, is_active, changed_by)
    return user


def delete_user(user_id: int, *, deleted_by: int) -> None:
    """Soft delete: the account is deactivated, rows referencing it stay."""
    set_user_status(user_id, False, changed_by=deleted_by)


# ── Privileges & projects overview ───────────────────────────────────────


def user_privileges_summary(user_id: int) -> dict:
    """Direct, project-scoped and role-derived grants currently held."""
    get_user(user_id)
    now = datetime.now(timezone.utc)

    direct = [
        g.to_dict() for g in UserPrivilege.query.filter_by(user_id=user_id, is_active=True)
        .order_by(UserPrivilege.id).all()
        if not g.is_expired(now)
    ]
    project = [
        g.to_dict() for g in ProjectUserPrivilege.query.filter_by(user_id=user_id, is_active=True)
        .order_by(ProjectUserPrivilege.id).all()
    ]
    role_derived = []
    for allocation in active_allocations_query(user_id).order_by(ProjectAllocation.project_id).all():
        role = allocation.role
        if role is None or not role.is_active:
            continue
        grants = role.group_privileges.filter(GroupPrivilege.is_active.is_(True)).all()
        role_derived.append({
            "project_id": allocation.project_id,
            "role_id": role.id,
            "role": role.name,
            "privileges": [
                g.privilege.to_dict() for g in grants
                if g.privilege is not None and g.privilege.is_active
            ],
        })
    return {"userPrivileges": direct, "projectPrivileges": project, "rolePrivileges": role_derived}


def user_projects(user_id: int) -> dict:
    """Active projects the user owns, plus current allocations."""
    get_user(user_id)
    owned = (
        Project.query.filter(Project.user_id == user_id, Project.is_active.is_(True))
        .order_by(Project.name).all()
    )
    allocated = []
    for allocation in active_allocations_query(user_id).all():
        if allocation.project is None or not allocation.project.is_active:
            continue
        allocated.append({
            "project": allocation.project.to_dict(),
            "role": allocation.role.name if allocation.role else None,
            "allocation_percentage": float(allocation.allocation_percentage),
            "start_date": allocation.start_date.isoformat() if allocation.start_date else None,
            "end_date": allocation.end_date.isoformat() if allocation.end_date else None,
        })
    return {"owned": [p.to_dict() for p in owned], "allocated": allocated}


# ── Email preferences ────────────────────────────────────────────────────


def get_email_preferences(user_id: int) -> list[dict]:
    get_user(user_id)
    rows = {p.email_type: p for p in EmailPreference.query.filter_by(user_id=user_id).all()}
    return [
        {"email_type": t, "is_enabled": rows[t].is_enabled if t in rows else True}
        for t in EMAIL_TYPES
    ]


def update_email_preferences(user_id: int, preferences: dict) -> list[dict]:
    """Upsert ``{email_type: bool}`` pairs."""
    get_user(user_id)
    if not isinstance(preferences, dict) or not preferences:
        raise ValidationError("preferences must be a non-empty object")
    unknown = [t for t in preferences if t not in EMAIL_TYPES]
    if unknown:
        raise ValidationError(
            f"Unknown email type(s): {', '.join(unknown)}",
            details={t: f"one of {', '.join(EMAIL_TYPES)}" for t in unknown},
        )
    for email_type, enabled in preferences.items():
        if not isinstance(enabled, bool):
            raise ValidationError(f"{email_type} must be a boolean", details={email_type: "boolean"})
        pref = EmailPreference.query.filter_by(user_id=user_id, email_type=email_type).first()
        if pref is None:
            pref = EmailPreference(user_id=user_id, email_type=email_type)
            db.session.add(pref)
        pref.is_enabled = enabled
    db.session.commit()
    return get_email_preferences(user_id)

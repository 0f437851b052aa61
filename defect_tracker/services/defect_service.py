"""Defect service: lifecycle, change history and comments.

Transaction policy: each mutation writes the defect and its DefectHistory
rows in a single commit. Notification events (DEFECT_ASSIGNED,
DEFECT_STATUS_CHANGED) are published only after that commit; a delivery
failure never affects the defect.

Tracked fields (one history row per changed field):
    defect_status_id, priority_id, severity_id, type_id, assigned_to,
    title, description
"""

from __future__ import annotations

import logging

from sqlalchemy import or_

from defect_tracker.core.exceptions import NotFoundError, ValidationError
from defect_tracker.models import db
from defect_tracker.models.auth import User
from defect_tracker.models.defect import (
    Comment,
    Defect,
    DefectHistory,
    DefectStatus,
    DefectType,
    Priority,
    Severity,
)
from defect_tracker.models.project import Module, SubModule
from defect_tracker.services.authorization import get_active_project
from defect_tracker.services.notification import NotificationDispatcher
from defect_tracker.utils.helpers import parse_int, require_fields

logger = logging.getLogger(__name__)

TRACKED_FIELDS = (
    "defect_status_id",
    "priority_id",
    "severity_id",
    "type_id",
    "assigned_to",
    "title",
    "description",
)

# Lookup table per foreign-key field
_REFERENCES = {
    "defect_status_id": (DefectStatus, "status"),
    "priority_id": (Priority, "priority"),
    "severity_id": (Severity, "severity"),
    "type_id": (DefectType, "type"),
}

_TEXT_FIELDS = (
    "steps_to_reproduce", "expected_result", "actual_result",
    "environment", "browser", "os", "resolution_notes",
)

LIST_FILTERS = ("status_id", "priority_id", "severity_id", "type_id",
                "assigned_to", "assigned_by", "module_id")

_FILTER_COLUMNS = {
    "status_id": Defect.defect_status_id,
    "priority_id": Defect.priority_id,
    "severity_id": Defect.severity_id,
    "type_id": Defect.type_id,
    "assigned_to": Defect.assigned_to,
    "assigned_by": Defect.assigned_by,
    "module_id": Defect.module_id,
}


# ── Validation helpers ───────────────────────────────────────────────────


def _reference(field: str, value):
    """Return the active lookup row for ``field`` or raise ValidationError."""
    model, label = _REFERENCES[field]
    ref_id = parse_int(value, field)
    row = db.session.get(model, ref_id) if ref_id is not None else None
    if row is None or not row.is_active:
        raise ValidationError(f"Unknown or inactive {label}", details={field: "not found"})
    return row


def _assignee(value):
    user_id = parse_int(value, "assigned_to")
    if user_id is None:
        return None
    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        raise ValidationError("Unknown or inactive assignee", details={"assigned_to": "not found"})
    return user


def _module_ids(project_id: int, module_id, sub_module_id):
    module_id = parse_int(module_id, "module_id")
    sub_module_id = parse_int(sub_module_id, "sub_module_id")
    if module_id is not None:
        module = db.session.get(Module, module_id)
        if module is None or not module.is_active or module.project_id != project_id:
            raise ValidationError("Module does not belong to this project",
                                  details={"module_id": "not in project"})
    if sub_module_id is not None:
        if module_id is None:
            raise ValidationError("sub_module_id requires module_id",
                                  details={"module_id": "required"})
        sub = db.session.get(SubModule, sub_module_id)
        if sub is None or not sub.is_active or sub.module_id != module_id:
            raise ValidationError("Sub-module does not belong to the module",
                                  details={"sub_module_id": "not in module"})
    return module_id, sub_module_id


def _display(field: str, value):
    """Human-readable history value for a tracked field."""
    if value is None:
        return None
    if field in _REFERENCES:
        row = db.session.get(_REFERENCES[field][0], value)
        return row.name if row else str(value)
    if field == "assigned_to":
        user = db.session.get(User, value)
        return user.full_name if user else str(value)
    return str(value)


def _history(defect: Defect, field: str, old, new, *, changed_by: int, notes=None):
    db.session.add(DefectHistory(
        defect_id=defect.id,
        field_name=field,
        old_value=old,
        new_value=new,
        changed_by=changed_by,
        notes=notes,
    ))


def _user_name(user_id):
    user = db.session.get(User, user_id) if user_id else None
    return user.full_name if user else "System"


# ── Notifications ────────────────────────────────────────────────────────


def _notify_assigned(defect: Defect, assigned_by: int):
    if defect.assigned_to is None or defect.assigned_to == assigned_by:
        return
    NotificationDispatcher.publish(
        "DEFECT_ASSIGNED", recipient_id=defect.assigned_to, project_id=defect.project_id,
        context={
            "defect_id": defect.id,
            "title": defect.title,
            "project_name": get_active_project(defect.project_id).name,
            "assigned_by": _user_name(assigned_by),
            "severity": defect.severity.name if defect.severity else "",
            "priority": defect.priority.name if defect.priority else "",
        },
    )


def _notify_status(defect: Defect, old_status: str, new_status: str, changed_by: int):
    context = {
        "defect_id": defect.id,
        "title": defect.title,
        "project_name": get_active_project(defect.project_id).name,
        "old_status": old_status,
        "new_status": new_status,
        "changed_by": _user_name(changed_by),
    }
    recipients = {defect.assigned_to, defect.assigned_by} - {None, changed_by}
    for recipient_id in sorted(recipients):
        NotificationDispatcher.publish(
            "DEFECT_STATUS_CHANGED", recipient_id=recipient_id,
            project_id=defect.project_id, context=context,
        )


# ── Queries ──────────────────────────────────────────────────────────────


def list_defects_query(project_id: int, filters: dict | None = None):
    get_active_project(project_id)
    filters = filters or {}
    query = Defect.query.filter(Defect.project_id == project_id, Defect.is_active.is_(True))

    search = (filters.get("search") or "").strip()
    if search:
        term = f"%{search}%"
        query = query.filter(or_(Defect.title.ilike(term), Defect.description.ilike(term)))
    for name in LIST_FILTERS:
        value = parse_int(filters.get(name), name)
        if value is not None:
            query = query.filter(_FILTER_COLUMNS[name] == value)
    return query.order_by(Defect.created_at.desc(), Defect.id.desc())


def get_defect(project_id: int, defect_id: int) -> Defect:
    defect = db.session.get(Defect, defect_id)
    if defect is None or not defect.is_active or defect.project_id != project_id:
        raise NotFoundError(resource="Defect", resource_id=defect_id)
    return defect


# ── Mutations ────────────────────────────────────────────────────────────


def create_defect(project_id: int, data: dict, *, created_by: int) -> Defect:
    get_active_project(project_id)
    require_fields(data, "title", "description", "severity_id", "priority_id", "type_id")

    status = (
        _reference("defect_status_id", data["defect_status_id"])
        if data.get("defect_status_id") not in (None, "")
        else default_status()
    )
    severity = _reference("severity_id", data["severity_id"])
    priority = _reference("priority_id", data["priority_id"])
    defect_type = _reference("type_id", data["type_id"])
    assignee = _assignee(data.get("assigned_to"))
    module_id, sub_module_id = _module_ids(project_id, data.get("module_id"), data.get("sub_module_id"))

    defect = Defect(
        project_id=project_id,
        module_id=module_id,
        sub_module_id=sub_module_id,
        title=str(data["title"]).strip(),
        description=str(data["description"]).strip(),
        assigned_by=created_by,
        assigned_to=assignee.id if assignee else None,
        defect_status_id=status.id,
        severity_id=severity.id,
        priority_id=priority.id,
        type_id=defect_type.id,
    )
    for attr in _TEXT_FIELDS:
        if data.get(attr) is not None:
            setattr(defect, attr, data[attr])
    db.session.add(defect)
    db.session.flush()
    _history(defect, "status", None, "Created", changed_by=created_by,
             notes=f"Defect created with status {status.name}")
    db.session.commit()
    logger.info("Defect %s created in project %s by %s", defect.id, project_id, created_by)

    _notify_assigned(defect, created_by)
    return defect


def default_status() -> DefectStatus:
    """First active, non-closed status by order_sequence (New)."""
    status = (
        DefectStatus.query.filter(
            DefectStatus.is_active.is_(True), DefectStatus.is_closed_status.is_(False),
        )
        .order_by(DefectStatus.order_sequence, DefectStatus.id)
        .first()
    )
    if status is None:
        raise ValidationError("No active defect status configured",
                              details={"defect_status_id": "required"})
    return status


def update_defect(project_id: int, defect_id: int, data: dict, *, changed_by: int) -> Defect:
    defect = get_defect(project_id, defect_id)
    old = {f: getattr(defect, f) for f in TRACKED_FIELDS}

    for field in _REFERENCES:
        if field in data:
            setattr(defect, field, _reference(field, data[field]).id)
    if "assigned_to" in data:
        assignee = _assignee(data.get("assigned_to"))
        defect.assigned_to = assignee.id if assignee else None
    for field in ("title", "description"):
        if field in data:
            value = str(data.get(field) or "").strip()
            if not value:
                raise ValidationError(f"{field} cannot be empty", details={field: "required"})
            setattr(defect, field, value)
    if "module_id" in data or "sub_module_id" in data:
        defect.module_id, defect.sub_module_id = _module_ids(
            project_id,
            data.get("module_id", defect.module_id),
            data.get("sub_module_id", defect.sub_module_id if "module_id" not in data else None),
        )
    for attr in _TEXT_FIELDS:
        if attr in data:
            setattr(defect, attr, data[attr])
    if "is_duplicate" in data:
        defect.is_duplicate = bool(data["is_duplicate"])
    if "duplicate_of" in data:
        defect.duplicate_of = parse_int(data["duplicate_of"], "duplicate_of")

    changed = [f for f in TRACKED_FIELDS if getattr(defect, f) != old[f]]
    for field in changed:
        _history(defect, field, _display(field, old[field]), _display(field, getattr(defect, field)),
                 changed_by=changed_by)
    db.session.commit()

    if "assigned_to" in changed:
        _notify_assigned(defect, changed_by)
    if "defect_status_id" in changed:
        _notify_status(defect, _display("defect_status_id", old["defect_status_id"]),
                       defect.status.name, changed_by)
    return defect


def change_status(project_id: int, defect_id: int, status_id, *, changed_by: int,
                  notes: str | None = None) -> Defect:
    defect = get_defect(project_id, defect_id)
    status = _reference("defect_status_id", status_id)
    if status.id == defect.defect_status_id:
        return defect

    old_name = defect.status.name if defect.status else None
    defect.defect_status_id = status.id
    defect.status = status
    if notes and status.is_closed_status:
        defect.resolution_notes = notes
    _history(defect, "defect_status_id", old_name, status.name, changed_by=changed_by, notes=notes)
    db.session.commit()
    logger.info("Defect %s status %s → %s by %s", defect.id, old_name, status.name, changed_by)

    _notify_status(defect, old_name, status.name, changed_by)
    return defect


def assign_defect(project_id: int, defect_id: int, assigned_to, *, assigned_by: int,
                  notes: str | None = None) -> Defect:
    defect = get_defect(project_id, defect_id)
    assignee = _assignee(assigned_to)
    new_id = assignee.id if assignee else None
    if new_id == defect.assigned_to:
        return defect

    old_display = _display("assigned_to", defect.assigned_to)
    defect.assigned_to = new_id
    _history(defect, "assigned_to", old_display, assignee.full_name if assignee else None,
             changed_by=assigned_by, notes=notes)
    db.session.commit()

    _notify_assigned(defect, assigned_by)
    return defect


def delete_defect(project_id: int, defect_id: int, *, deleted_by: int) -> None:
    defect = get_defect(project_id, defect_id)
    defect.is_active = False
    _history(defect, "is_active", "true", "false", changed_by=deleted_by, notes="Defect deleted")
    db.session.commit()
    logger.info("Defect %s soft-deleted by %s", defect_id, deleted_by)


# ── History & comments ───────────────────────────────────────────────────


def defect_history(project_id: int, defect_id: int) -> list[DefectHistory]:
    get_defect(project_id, defect_id)
    return (
        DefectHistory.query.filter(DefectHistory.defect_id == defect_id)
        .order_by(DefectHistory.created_at.desc(), DefectHistory.id.desc())
        .all()
    )


def list_comments(project_id: int, defect_id: int) -> list[Comment]:
    get_defect(project_id, defect_id)
    return (
        Comment.query.filter(Comment.defect_id == defect_id, Comment.is_active.is_(True))
        .order_by(Comment.created_at.desc(), Comment.id.desc())
        .all()
    )


def add_comment(project_id: int, defect_id: int, data: dict, *, user_id: int) -> Comment:
    get_defect(project_id, defect_id)
    require_fields(data, "comment")
    comment = Comment(defect_id=defect_id, user_id=user_id, comment=str(data["comment"]).strip())
    db.session.add(comment)
    db.session.commit()
    return comment

"""Reference data: severities, priorities, statuses, defect and release types,
roles, privileges and designations.

Each lookup table is described by a ``LookupKind``: its model, list ordering,
the privilege module guarding writes and the writable fields with their
coercers. Deleting deactivates the row; rows stay referenced by defects,
allocations and grants.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable

from defect_tracker.core.exceptions import ConflictError, NotFoundError, ValidationError
from defect_tracker.models import db
from defect_tracker.models.auth import PRIVILEGE_ACTIONS, Designation, Privilege, Role
from defect_tracker.models.defect import DefectStatus, DefectType, Priority, Severity
from defect_tracker.models.release import ReleaseType
from defect_tracker.utils.helpers import parse_int

logger = logging.getLogger(__name__)

_COLOR_RE = re.compile(r"^#[0-9a-fA-F]{6}$")


# ── Field coercers ───────────────────────────────────────────────────────


def _text(max_len: int, *, required: bool = False) -> Callable[[str, Any], str | None]:
    def coerce(name, value):
        text = str(value).strip() if value is not None else ""
        if not text:
            if required:
                raise ValidationError(f"{name} cannot be empty", details={name: "required"})
            return None
        if len(text) > max_len:
            raise ValidationError(f"{name} is too long", details={name: f"at most {max_len} characters"})
        return text
    return coerce


def _int_range(low: int, high: int):
    def coerce(name, value):
        number = parse_int(value, name)
        if number is None or not low <= number <= high:
            raise ValidationError(f"{name} must be between {low} and {high}",
                                  details={name: f"{low} <= value <= {high}"})
        return number
    return coerce


def _color(name, value):
    if value in (None, ""):
        return None
    if not isinstance(value, str) or not _COLOR_RE.match(value):
        raise ValidationError(f"{name} must be a #RRGGBB colour", details={name: "invalid colour"})
    return value


def _flag(name, value):
    if not isinstance(value, bool):
        raise ValidationError(f"{name} must be a boolean", details={name: "not a boolean"})
    return value


def _lower_key(name, value):
    text = _text(20)(name, value)
    return text.lower() if text else None


def _module_name(name, value):
    return _text(50, required=True)(name, value).lower()


def _action(name, value):
    action = str(value or "").strip().upper()
    if action not in PRIVILEGE_ACTIONS:
        raise ValidationError(f"Unknown action '{value}'",
                              details={name: f"one of {', '.join(PRIVILEGE_ACTIONS)}"})
    return action


@dataclass(frozen=True)
class LookupKind:
    """One lookup table exposed under ``/api/<kind>``."""

    model: type
    ordering: tuple
    privilege_module: str
    fields: dict = field(default_factory=dict)
    unique: tuple = ("name",)


_NAME = _text(100, required=True)

LOOKUPS: dict[str, LookupKind] = {
    "severities": LookupKind(
        Severity, (Severity.level.desc(), Severity.id), "defects",
        {"name": _text(50, required=True), "code": _lower_key, "description": _text(2000),
         "level": _int_range(1, 10), "color_code": _color},
    ),
    "priorities": LookupKind(
        Priority, (Priority.level.desc(), Priority.id), "defects",
        {"name": _text(50, required=True), "description": _text(2000),
         "level": _int_range(1, 10), "color_code": _color},
    ),
    "defect-statuses": LookupKind(
        DefectStatus, (DefectStatus.order_sequence, DefectStatus.id), "defects",
        {"name": _text(50, required=True), "description": _text(2000), "color_code": _color,
         "is_closed_status": _flag, "order_sequence": _int_range(0, 1000)},
    ),
    "defect-types": LookupKind(
        DefectType, (DefectType.name,), "defects",
        {"name": _text(50, required=True), "description": _text(2000)},
    ),
    "release-types": LookupKind(
        ReleaseType, (ReleaseType.name,), "releases",
        {"name": _NAME, "description": _text(2000)},
    ),
    "roles": LookupKind(
        Role, (Role.name,), "users",
        {"name": _NAME, "description": _text(2000)},
    ),
    "privileges": LookupKind(
        Privilege, (Privilege.module, Privilege.action), "users",
        {"name": _NAME, "description": _text(2000), "module": _module_name, "action": _action},
        unique=("module", "action"),
    ),
    "designations": LookupKind(
        Designation, (Designation.name,), "users",
        {"name": _NAME, "description": _text(2000)},
    ),
}


def get_kind(kind: str) -> LookupKind:
    if kind not in LOOKUPS:
        raise NotFoundError(resource="Lookup", resource_id=kind)
    return LOOKUPS[kind]


def _get_row(kind: str, row_id: int):
    model = get_kind(kind).model
    row = db.session.get(model, row_id)
    if row is None:
        raise NotFoundError(resource=model.__name__, resource_id=row_id)
    return row


def _check_unique(kind: LookupKind, values: dict, *, exclude_id: int | None = None) -> None:
    query = kind.model.query.filter_by(**{col: values[col] for col in kind.unique})
    if exclude_id is not None:
        query = query.filter(kind.model.id != exclude_id)
    if query.first() is not None:
        raise ConflictError(kind.model.__name__, "/".join(kind.unique),
                            "/".join(str(values[col]) for col in kind.unique))


def list_lookup(kind: str, *, is_active=True, search: str | None = None) -> list[dict]:
    """List one lookup table; ``is_active=None`` returns every row."""
    lookup = get_kind(kind)
    model = lookup.model
    query = model.query
    if is_active is not None:
        query = query.filter(model.is_active.is_(is_active))
    if search:
        query = query.filter(model.name.ilike(f"%{search.strip()}%"))
    return [row.to_dict() for row in query.order_by(*lookup.ordering).all()]


def get_lookup(kind: str, row_id: int):
    return _get_row(kind, row_id)


def create_lookup(kind: str, data: dict, *, created_by: int):
    lookup = get_kind(kind)
    values = {}
    for name, coerce in lookup.fields.items():
        if name in data or name in lookup.unique or name == "name":
            values[name] = coerce(name, data.get(name))
    _check_unique(lookup, values)

    row = lookup.model(**{k: v for k, v in values.items() if v is not None}, is_active=True)
    db.session.add(row)
    db.session.commit()
    logger.info("%s %s created by %s", lookup.model.__name__, row.id, created_by)
    return row


def update_lookup(kind: str, row_id: int, data: dict, *, updated_by: int):
    lookup = get_kind(kind)
    row = _get_row(kind, row_id)
    unknown = sorted(set(data) - set(lookup.fields) - {"is_active"})
    if unknown:
        raise ValidationError(f"Unknown field(s): {', '.join(unknown)}",
                              details={name: "not writable" for name in unknown})

    changes = {name: coerce(name, data[name]) for name, coerce in lookup.fields.items() if name in data}
    if "is_active" in data:
        changes["is_active"] = _flag("is_active", data["is_active"])
    if any(col in changes for col in lookup.unique):
        merged = {col: changes.get(col, getattr(row, col)) for col in lookup.unique}
        _check_unique(lookup, merged, exclude_id=row.id)

    for name, value in changes.items():
        setattr(row, name, value)
    db.session.commit()
    logger.info("%s %s updated by %s: %s", lookup.model.__name__, row.id, updated_by, sorted(changes))
    return row


def deactivate_lookup(kind: str, row_id: int, *, deleted_by: int):
    lookup = get_kind(kind)
    row = _get_row(kind, row_id)
    if not row.is_active:
        raise NotFoundError(resource=lookup.model.__name__, resource_id=row_id)
    row.is_active = False
    db.session.commit()
    logger.info("%s %s deactivated by %s", lookup.model.__name__, row.id, deleted_by)
    return row

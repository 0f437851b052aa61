"""Project, module and sub-module CRUD.

Deletes are soft (``is_active = False``). Lookups of inactive rows raise
NotFoundError so a deleted project behaves as absent everywhere.
"""

from __future__ import annotations

import logging

from sqlalchemy import or_

from defect_tracker.core.exceptions import NotFoundError, ValidationError
from defect_tracker.models import db
from defect_tracker.models.project import PROJECT_STATUSES, Module, Project, SubModule
from defect_tracker.services.authorization import accessible_project_ids, get_active_project
from defect_tracker.utils.helpers import parse_date, require_fields

logger = logging.getLogger(__name__)

_PROJECT_TEXT_FIELDS = (
    "name", "description", "client_name", "client_country", "client_state",
    "client_email", "client_phone", "address",
)


def _status(value) -> str:
    status = str(value or "ACTIVE").strip().upper()
    if status not in PROJECT_STATUSES:
        raise ValidationError(
            f"Invalid status '{value}'", details={"status": f"one of {', '.join(PROJECT_STATUSES)}"}
        )
    return status


def _check_dates(start, end):
    if start and end and end < start:
        raise ValidationError("end_date must not be before start_date", details={"end_date": "before start_date"})


# ── Projects ─────────────────────────────────────────────────────────────


def list_projects_query(user_id: int, *, search: str | None = None, status: str | None = None,
                        all_projects: bool = False):
    """Active projects, limited to the caller's own/allocated ones unless ``all_projects``."""
    query = Project.query.filter(Project.is_active.is_(True))
    if not all_projects:
        query = query.filter(Project.id.in_(accessible_project_ids(user_id)))
    if search:
        term = f"%{search.strip()}%"
        query = query.filter(or_(Project.name.ilike(term), Project.client_name.ilike(term)))
    if status:
        query = query.filter(Project.status == _status(status))
    return query.order_by(Project.created_at.desc(), Project.id.desc())


def create_project(data: dict, *, owner_id: int) -> Project:
    require_fields(data, "name")
    start = parse_date(data.get("start_date"), "start_date")
    end = parse_date(data.get("end_date"), "end_date")
    _check_dates(start, end)

    project = Project(
        user_id=owner_id,
        start_date=start,
        end_date=end,
        status=_status(data.get("status")),
    )
    for attr in _PROJECT_TEXT_FIELDS:
        value = data.get(attr)
        if value is not None:
            setattr(project, attr, str(value).strip())
    db.session.add(project)
    db.session.commit()
    logger.info("Project created id=%s owner=%s", project.id, owner_id)
    return project


def update_project(project_id: int, data: dict) -> Project:
    project = get_active_project(project_id)
    if "name" in data and not str(data.get("name") or "").strip():
        raise ValidationError("name cannot be empty", details={"name": "required"})
    for attr in _PROJECT_TEXT_FIELDS:
        if attr in data:
            value = data[attr]
            setattr(project, attr, str(value).strip() if value is not None else None)
    if "status" in data:
        project.status = _status(data.get("status"))
    if "start_date" in data:
        project.start_date = parse_date(data.get("start_date"), "start_date")
    if "end_date" in data:
        project.end_date = parse_date(data.get("end_date"), "end_date")
    _check_dates(project.start_date, project.end_date)
    db.session.commit()
    return project


def delete_project(project_id: int, *, deleted_by: int) -> None:
    project = get_active_project(project_id)
    project.is_active = False
    project.status = "INACTIVE"
    db.session.commit()
    logger.info("Project id=%s soft-deleted by=%s", project_id, deleted_by)


# ── Modules ──────────────────────────────────────────────────────────────


def list_modules(project_id: int) -> list[Module]:
    get_active_project(project_id)
    return (
        Module.query.filter(Module.project_id == project_id, Module.is_active.is_(True))
        .order_by(Module.name).all()
    )


def get_module(project_id: int, module_id: int) -> Module:
    module = db.session.get(Module, module_id)
    if module is None or not module.is_active or module.project_id != project_id:
        raise NotFoundError(resource="Module", resource_id=module_id)
    return module


def create_module(project_id: int, data: dict) -> Module:
    get_active_project(project_id)
    require_fields(data, "name")
    module = Module(
        project_id=project_id,
        name=str(data["name"]).strip(),
        description=data.get("description"),
    )
    db.session.add(module)
    db.session.commit()
    return module


def update_module(project_id: int, module_id: int, data: dict) -> Module:
    module = get_module(project_id, module_id)
    if "name" in data:
        name = str(data.get("name") or "").strip()
        if not name:
            raise ValidationError("name cannot be empty", details={"name": "required"})
        module.name = name
    if "description" in data:
        module.description = data.get("description")
    db.session.commit()
    return module


def delete_module(project_id: int, module_id: int) -> None:
    """Soft-delete a module together with its sub-modules."""
    module = get_module(project_id, module_id)
    module.is_active = False
    for sub in module.sub_modules.filter_by(is_active=True):
        sub.is_active = False
    db.session.commit()


# ── Sub-modules ──────────────────────────────────────────────────────────


def get_sub_module(project_id: int, module_id: int, sub_module_id: int) -> SubModule:
    get_module(project_id, module_id)
    sub = db.session.get(SubModule, sub_module_id)
    if sub is None or not sub.is_active or sub.module_id != module_id:
        raise NotFoundError(resource="SubModule", resource_id=sub_module_id)
    return sub


def list_sub_modules(project_id: int, module_id: int) -> list[SubModule]:
    module = get_module(project_id, module_id)
    return module.sub_modules.filter_by(is_active=True).order_by(SubModule.name).all()


def create_sub_module(project_id: int, module_id: int, data: dict) -> SubModule:
    get_module(project_id, module_id)
    require_fields(data, "name")
    sub = SubModule(
        module_id=module_id,
        name=str(data["name"]).strip(),
        description=data.get("description"),
    )
    db.session.add(sub)
    db.session.commit()
    return sub


def update_sub_module(project_id: int, module_id: int, sub_module_id: int, data: dict) -> SubModule:
    sub = get_sub_module(project_id, module_id, sub_module_id)
    if "name" in data:
        name = str(data.get("name") or "").strip()
        if not name:
            raise ValidationError("name cannot be empty", details={"name": "required"})
        sub.name = name
    if "description" in data:
        sub.description = data.get("description")
    db.session.commit()
    return sub


def delete_sub_module(project_id: int, module_id: int, sub_module_id: int) -> None:
    sub = get_sub_module(project_id, module_id, sub_module_id)
    sub.is_active = False
    db.session.commit()

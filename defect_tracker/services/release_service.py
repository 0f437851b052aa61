"""Project release CRUD.

``version`` is unique per project among all rows, soft-deleted ones
included, so a retired version number is never reused. Deletes are soft.
"""

from __future__ import annotations

import logging

from defect_tracker.core.exceptions import ConflictError, NotFoundError, ValidationError
from defect_tracker.models import db
from defect_tracker.models.release import RELEASE_STATUSES, Release, ReleaseType
from defect_tracker.services.authorization import get_active_project
from defect_tracker.utils.helpers import parse_date, parse_int, require_fields

logger = logging.getLogger(__name__)


def _status(value) -> str:
    status = str(value or "PLANNED").strip().upper()
    if status not in RELEASE_STATUSES:
        raise ValidationError(
            f"Invalid status '{value}'", details={"status": f"one of {', '.join(RELEASE_STATUSES)}"}
        )
    return status


def _release_type(value) -> ReleaseType:
    type_id = parse_int(value, "release_type_id")
    release_type = db.session.get(ReleaseType, type_id) if type_id is not None else None
    if release_type is None or not release_type.is_active:
        raise ValidationError("Unknown or inactive release type",
                              details={"release_type_id": "not found"})
    return release_type


def _text(data: dict, field: str) -> str:
    value = str(data.get(field) or "").strip()
    if not value:
        raise ValidationError(f"{field} cannot be empty", details={field: "required"})
    return value


def _check_version_free(project_id: int, version: str, *, exclude_id: int | None = None) -> None:
    query = Release.query.filter(Release.project_id == project_id, Release.version == version)
    if exclude_id is not None:
        query = query.filter(Release.id != exclude_id)
    if query.first() is not None:
        raise ConflictError("Release", "version", version)


def list_releases(project_id: int, *, status: str | None = None) -> list[Release]:
    """Active releases of a project, latest planned first; undated ones last."""
    get_active_project(project_id)
    query = Release.query.filter(Release.project_id == project_id, Release.is_active.is_(True))
    if status:
        query = query.filter(Release.status == _status(status))
    return query.order_by(
        Release.planned_date.is_(None), Release.planned_date.desc(), Release.id.desc(),
    ).all()


def get_release(project_id: int, release_id: int) -> Release:
    release = db.session.get(Release, release_id)
    if release is None or not release.is_active or release.project_id != project_id:
        raise NotFoundError(resource="Release", resource_id=release_id)
    return release


def create_release(project_id: int, data: dict, *, created_by: int) -> Release:
    get_active_project(project_id)
    require_fields(data, "name", "version", "release_type_id")
    version = _text(data, "version")
    _check_version_free(project_id, version)

    release = Release(
        project_id=project_id,
        name=_text(data, "name"),
        version=version,
        description=data.get("description"),
        release_type_id=_release_type(data["release_type_id"]).id,
        planned_date=parse_date(data.get("planned_date"), "planned_date"),
        actual_date=parse_date(data.get("actual_date"), "actual_date"),
        status=_status(data.get("status")),
        created_by=created_by,
    )
    db.session.add(release)
    db.session.commit()
    logger.info("Release %s (%s) created in project %s by %s",
                release.id, version, project_id, created_by)
    return release


def update_release(project_id: int, release_id: int, data: dict) -> Release:
    release = get_release(project_id, release_id)
    if "name" in data:
        release.name = _text(data, "name")
    if "version" in data:
        version = _text(data, "version")
        if version != release.version:
            _check_version_free(project_id, version, exclude_id=release.id)
            release.version = version
    if "description" in data:
        release.description = data.get("description")
    if "release_type_id" in data:
        release.release_type_id = _release_type(data.get("release_type_id")).id
    if "planned_date" in data:
        release.planned_date = parse_date(data.get("planned_date"), "planned_date")
    if "actual_date" in data:
        release.actual_date = parse_date(data.get("actual_date"), "actual_date")
    if "status" in data:
        release.status = _status(data.get("status"))
    db.session.commit()
    return release


def delete_release(project_id: int, release_id: int, *, deleted_by: int) -> None:
    release = get_release(project_id, release_id)
    release.is_active = False
    db.session.commit()
    logger.info("Release %s soft-deleted by %s", release_id, deleted_by)

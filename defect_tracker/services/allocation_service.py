"""Project allocation service: team membership with a role and a planned date range.

Every change writes a ProjectAllocationHistory row in the same commit as
the allocation itself. ``allocate`` publishes PROJECT_ALLOCATED after the
commit.

At most one active allocation may exist per (user, project); a second
``allocate`` raises ConflictError.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

from defect_tracker.core.exceptions import ConflictError, NotFoundError, ValidationError
from defect_tracker.models import db
from defect_tracker.models.auth import Role, User
from defect_tracker.models.project import ProjectAllocation, ProjectAllocationHistory
from defect_tracker.services.authorization import get_active_project
from defect_tracker.services.notification import NotificationDispatcher
from defect_tracker.utils.helpers import parse_date, parse_int, require_fields

logger = logging.getLogger(__name__)


def _percentage(value) -> Decimal:
    if value in (None, ""):
        return Decimal("100")
    try:
        pct = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(
            "allocation_percentage must be a number",
            details={"allocation_percentage": "not a number"},
        ) from exc
    if pct < 0 or pct > 100:
        raise ValidationError(
            "allocation_percentage must be between 0 and 100",
            details={"allocation_percentage": "0 <= value <= 100"},
        )
    return pct.quantize(Decimal("0.01"))


def _active_role(role_id) -> Role:
    role_id = parse_int(role_id, "role_id")
    role = db.session.get(Role, role_id) if role_id is not None else None
    if role is None or not role.is_active:
        raise ValidationError("Unknown or inactive role", details={"role_id": "not found"})
    return role


def _history(allocation: ProjectAllocation, action: str, *, changed_by: int,
             old_value=None, new_value=None, notes=None) -> ProjectAllocationHistory:
    row = ProjectAllocationHistory(
        allocation_id=allocation.id,
        project_id=allocation.project_id,
        user_id=allocation.user_id,
        role_id=allocation.role_id,
        action=action,
        old_value=None if old_value is None else str(old_value),
        new_value=None if new_value is None else str(new_value),
        changed_by=changed_by,
        notes=notes,
    )
    db.session.add(row)
    return row


def list_allocations(project_id: int, *, include_inactive: bool = False) -> list[ProjectAllocation]:
    get_active_project(project_id)
    query = ProjectAllocation.query.filter(ProjectAllocation.project_id == project_id)
    if not include_inactive:
        query = query.filter(ProjectAllocation.is_active.is_(True))
    return query.order_by(ProjectAllocation.start_date.desc(), ProjectAllocation.id.desc()).all()


def get_allocation(project_id: int, allocation_id: int) -> ProjectAllocation:
    allocation = db.session.get(ProjectAllocation, allocation_id)
    if allocation is None or allocation.project_id != project_id:
        raise NotFoundError(resource="ProjectAllocation", resource_id=allocation_id)
    return allocation


def allocate(project_id: int, data: dict, *, allocated_by: int) -> ProjectAllocation:
    project = get_active_project(project_id)
    require_fields(data, "user_id", "role_id")

    user_id = parse_int(data.get("user_id"), "user_id")
    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        raise ValidationError("Unknown or inactive user", details={"user_id": "not found"})
    role = _active_role(data.get("role_id"))

    existing = ProjectAllocation.query.filter_by(
        project_id=project_id, user_id=user_id, is_active=True,
    ).first()
    if existing is not None:
        raise ConflictError("ProjectAllocation", "user_id", user_id)

    start = parse_date(data.get("start_date"), "start_date") or datetime.now(timezone.utc).date()
    end = parse_date(data.get("end_date"), "end_date")
    if end and end < start:
        raise ValidationError("end_date must not be before start_date", details={"end_date": "before start_date"})

    allocation = ProjectAllocation(
        project_id=project_id,
        user_id=user_id,
        role_id=role.id,
        start_date=start,
        end_date=end,
        allocation_percentage=_percentage(data.get("allocation_percentage")),
        notes=data.get("notes"),
        is_active=True,
    )
    db.session.add(allocation)
    db.session.flush()
    _history(allocation, "ALLOCATED", changed_by=allocated_by,
             new_value=f"{role.name} ({allocation.allocation_percentage}%)",
             notes=data.get("notes"))
    db.session.commit()
    logger.info("User %s allocated to project %s as %s by %s",
                user_id, project_id, role.name, allocated_by)

    NotificationDispatcher.publish(
        "PROJECT_ALLOCATED", recipient_id=user_id, project_id=project_id,
        context={
            "project_name": project.name,
            "role_name": role.name,
            "allocation_percentage": allocation.allocation_percentage,
            "start_date": allocation.start_date.isoformat(),
        },
    )
    return allocation


def update_allocation(project_id: int, allocation_id: int, data: dict, *,
                      changed_by: int) -> ProjectAllocation:
    get_active_project(project_id)
    allocation = get_allocation(project_id, allocation_id)
    if not allocation.is_active:
        raise ValidationError("Allocation is no longer active")

    if "role_id" in data:
        role = _active_role(data.get("role_id"))
        if role.id != allocation.role_id:
            old_name = allocation.role.name if allocation.role else allocation.role_id
            allocation.role_id = role.id
            allocation.role = role
            _history(allocation, "ROLE_CHANGED", changed_by=changed_by,
                     old_value=old_name, new_value=role.name)

    if "allocation_percentage" in data:
        pct = _percentage(data.get("allocation_percentage"))
        if pct != allocation.allocation_percentage:
            old_pct = allocation.allocation_percentage
            allocation.allocation_percentage = pct
            _history(allocation, "PERCENTAGE_CHANGED", changed_by=changed_by,
                     old_value=old_pct, new_value=pct)

    if "end_date" in data:
        end = parse_date(data.get("end_date"), "end_date")
        if end and end < allocation.start_date:
            raise ValidationError("end_date must not be before start_date",
                                  details={"end_date": "before start_date"})
        allocation.end_date = end
    if "notes" in data:
        allocation.notes = data.get("notes")

    db.session.commit()
    return allocation


def deallocate(project_id: int, allocation_id: int, *, changed_by: int, notes=None) -> ProjectAllocation:
    get_active_project(project_id)
    allocation = get_allocation(project_id, allocation_id)
    if not allocation.is_active:
        raise ValidationError("Allocation is already inactive")

    today = datetime.now(timezone.utc).date()
    allocation.is_active = False
    allocation.end_date = max(today, allocation.start_date)
    _history(allocation, "DEALLOCATED", changed_by=changed_by,
             old_value=allocation.role.name if allocation.role else None, notes=notes)
    db.session.commit()
    logger.info("Allocation %s (user %s, project %s) ended by %s",
                allocation.id, allocation.user_id, project_id, changed_by)
    return allocation


def allocation_history(project_id: int, *, user_id: int | None = None) -> list[ProjectAllocationHistory]:
    get_active_project(project_id)
    query = ProjectAllocationHistory.query.filter(ProjectAllocationHistory.project_id == project_id)
    if user_id is not None:
        query = query.filter(ProjectAllocationHistory.user_id == user_id)
    return query.order_by(ProjectAllocationHistory.created_at.desc(),
                          ProjectAllocationHistory.id.desc()).all()

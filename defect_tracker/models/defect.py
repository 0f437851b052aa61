"""
Defect Models: reference data, defects, change history and comments.

Lifecycle:
    created ──▶ reassigned / status-changed (each change → DefectHistory row)
            ──▶ closed (status.is_closed_status) or soft-deleted (is_active=False)
"""

from datetime import datetime, timezone

from defect_tracker.models import db


# ═══════════════════════════════════════════════════════════════
# REFERENCE DATA
# ═══════════════════════════════════════════════════════════════
class Severity(db.Model):
    __tablename__ = "severities"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), unique=True, nullable=False)
    code = db.Column(
        db.String(20), nullable=True,
        comment="Stable weighting key (high | medium | low); display name may change",
    )
    description = db.Column(db.Text)
    level = db.Column(db.Integer, default=1, nullable=False)  # 1-10
    color_code = db.Column(db.String(7))
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    @property
    def weight_key(self):
        """Key used by the dashboard weighting table."""
        return (self.code or self.name or "").strip().lower()

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "description": self.description,
            "level": self.level,
            "color_code": self.color_code,
            "is_active": self.is_active,
        }


class Priority(db.Model):
    __tablename__ = "priorities"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), unique=True, nullable=False)
    description = db.Column(db.Text)
    level = db.Column(db.Integer, default=1, nullable=False)
    color_code = db.Column(db.String(7))
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "level": self.level,
            "color_code": self.color_code,
            "is_active": self.is_active,
        }


class DefectStatus(db.Model):
    __tablename__ = "defect_statuses"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), unique=True, nullable=False)
    description = db.Column(db.Text)
    is_closed_status = db.Column(db.Boolean, default=False, nullable=False)
    color_code = db.Column(db.String(7))
    order_sequence = db.Column(db.Integer, default=0, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "is_closed_status": self.is_closed_status,
            "color_code": self.color_code,
            "order_sequence": self.order_sequence,
            "is_active": self.is_active,
        }


class DefectType(db.Model):
    __tablename__ = "defect_types"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), unique=True, nullable=False)
    description = db.Column(db.Text)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
        }


# ═══════════════════════════════════════════════════════════════
# DEFECTS
# ═══════════════════════════════════════════════════════════════
class Defect(db.Model):
    """
    Defect / bug logged against a project.

    Belongs to exactly one severity, status, priority and type. Soft deleted
    via ``is_active``; dashboard metrics only ever read active rows.
    """

    __tablename__ = "defects"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    module_id = db.Column(db.Integer, db.ForeignKey("modules.id", ondelete="SET NULL"))
    sub_module_id = db.Column(db.Integer, db.ForeignKey("sub_modules.id", ondelete="SET NULL"))

    # ── Description
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, nullable=False)
    steps_to_reproduce = db.Column(db.Text)
    expected_result = db.Column(db.Text)
    actual_result = db.Column(db.Text)

    # ── People
    assigned_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))
    assigned_to = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))

    # ── Classification
    defect_status_id = db.Column(
        db.Integer, db.ForeignKey("defect_statuses.id", ondelete="RESTRICT"), nullable=False
    )
    severity_id = db.Column(
        db.Integer, db.ForeignKey("severities.id", ondelete="RESTRICT"), nullable=False
    )
    priority_id = db.Column(
        db.Integer, db.ForeignKey("priorities.id", ondelete="RESTRICT"), nullable=False
    )
    type_id = db.Column(
        db.Integer, db.ForeignKey("defect_types.id", ondelete="RESTRICT"), nullable=False
    )

    # ── Environment
    environment = db.Column(db.String(100))
    browser = db.Column(db.String(100))
    os = db.Column(db.String(100))

    resolution_notes = db.Column(db.Text)
    is_duplicate = db.Column(db.Boolean, default=False, nullable=False)
    duplicate_of = db.Column(db.Integer, db.ForeignKey("defects.id", ondelete="SET NULL"))
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.Index("ix_defects_project_active", "project_id", "is_active"),
    )

    # Relationships
    module = db.relationship("Module")
    sub_module = db.relationship("SubModule")
    status = db.relationship("DefectStatus")
    severity = db.relationship("Severity")
    priority = db.relationship("Priority")
    defect_type = db.relationship("DefectType")
    assignee = db.relationship("User", foreign_keys=[assigned_to])
    reporter = db.relationship("User", foreign_keys=[assigned_by])

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "module_id": self.module_id,
            "module": self.module.name if self.module else None,
            "sub_module_id": self.sub_module_id,
            "sub_module": self.sub_module.name if self.sub_module else None,
            "title": self.title,
            "description": self.description,
            "steps_to_reproduce": self.steps_to_reproduce,
            "expected_result": self.expected_result,
            "actual_result": self.actual_result,
            "assigned_by": self.assigned_by,
            "assigned_by_name": self.reporter.full_name if self.reporter else None,
            "assigned_to": self.assigned_to,
            "assigned_to_name": self.assignee.full_name if self.assignee else None,
            "defect_status_id": self.defect_status_id,
            "status": self.status.name if self.status else None,
            "severity_id": self.severity_id,
            "severity": self.severity.name if self.severity else None,
            "priority_id": self.priority_id,
            "priority": self.priority.name if self.priority else None,
            "type_id": self.type_id,
            "type": self.defect_type.name if self.defect_type else None,
            "environment": self.environment,
            "browser": self.browser,
            "os": self.os,
            "resolution_notes": self.resolution_notes,
            "is_duplicate": self.is_duplicate,
            "duplicate_of": self.duplicate_of,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class DefectHistory(db.Model):
    """Immutable audit row: one per changed field per update."""

    __tablename__ = "defect_history"

    id = db.Column(db.Integer, primary_key=True)
    defect_id = db.Column(
        db.Integer, db.ForeignKey("defects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    field_name = db.Column(db.String(50), nullable=False)
    old_value = db.Column(db.Text)
    new_value = db.Column(db.Text)
    changed_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    changer = db.relationship("User")

    def to_dict(self):
        return {
            "id": self.id,
            "defect_id": self.defect_id,
            "field_name": self.field_name,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "changed_by": self.changed_by,
            "changed_by_name": self.changer.full_name if self.changer else None,
            "notes": self.notes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class Comment(db.Model):
    """Free-text remark on a defect."""

    __tablename__ = "comments"

    id = db.Column(db.Integer, primary_key=True)
    defect_id = db.Column(
        db.Integer, db.ForeignKey("defects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))
    comment = db.Column(db.Text, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    author = db.relationship("User")

    def to_dict(self):
        return {
            "id": self.id,
            "defect_id": self.defect_id,
            "user_id": self.user_id,
            "author": self.author.full_name if self.author else None,
            "comment": self.comment,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

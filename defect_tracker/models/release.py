"""
Release Models: release types and project releases.

A Release belongs to one project; its ``version`` is unique inside that
project. Deletes are soft (``is_active = False``).

    PLANNED ──▶ IN_PROGRESS ──▶ TESTING ──▶ RELEASED
        └──────────────┴────────────┴────▶ CANCELLED
"""

from datetime import datetime, timezone

from defect_tracker.models import db

RELEASE_STATUSES = ("PLANNED", "IN_PROGRESS", "TESTING", "RELEASED", "CANCELLED")


class ReleaseType(db.Model):
    __tablename__ = "release_types"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    description = db.Column(db.Text)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
        }


class Release(db.Model):
    __tablename__ = "releases"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    release_type_id = db.Column(
        db.Integer, db.ForeignKey("release_types.id", ondelete="RESTRICT"), nullable=False
    )
    name = db.Column(db.String(200), nullable=False)
    version = db.Column(db.String(50), nullable=False)
    description = db.Column(db.Text)
    planned_date = db.Column(db.Date)
    actual_date = db.Column(db.Date)
    status = db.Column(db.String(20), default="PLANNED", nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint("project_id", "version", name="uq_release_project_version"),
    )

    project = db.relationship("Project")
    release_type = db.relationship("ReleaseType")

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "release_type_id": self.release_type_id,
            "release_type": self.release_type.to_dict() if self.release_type else None,
            "planned_date": self.planned_date.isoformat() if self.planned_date else None,
            "actual_date": self.actual_date.isoformat() if self.actual_date else None,
            "status": self.status,
            "is_active": self.is_active,
            "created_by": self.created_by,
        }

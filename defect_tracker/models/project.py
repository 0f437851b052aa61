"""
Project Models: projects, modules, sub-modules and team allocations.

A ProjectAllocation is the time-bounded membership of one user in one
project with exactly one role. Every allocation change is mirrored by a
ProjectAllocationHistory row written in the same transaction.
"""

from datetime import datetime, timezone

from defect_tracker.models import db

PROJECT_STATUSES = ("ACTIVE", "INACTIVE", "COMPLETED", "ON_HOLD")
ALLOCATION_ACTIONS = ("ALLOCATED", "ROLE_CHANGED", "PERCENTAGE_CHANGED", "DEALLOCATED")


class Project(db.Model):
    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False,
        comment="Project owner",
    )
    start_date = db.Column(db.Date)
    end_date = db.Column(db.Date)

    # ── Client
    client_name = db.Column(db.String(200))
    client_country = db.Column(db.String(100))
    client_state = db.Column(db.String(100))
    client_email = db.Column(db.String(200))
    client_phone = db.Column(db.String(30))
    address = db.Column(db.Text)

    status = db.Column(db.String(20), default="ACTIVE", nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    owner = db.relationship("User", foreign_keys=[user_id])
    modules = db.relationship("Module", back_populates="project", lazy="dynamic")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "user_id": self.user_id,
            "owner": self.owner.full_name if self.owner else None,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "client_name": self.client_name,
            "client_country": self.client_country,
            "client_state": self.client_state,
            "client_email": self.client_email,
            "client_phone": self.client_phone,
            "address": self.address,
            "status": self.status,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class Module(db.Model):
    __tablename__ = "modules"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    project = db.relationship("Project", back_populates="modules")
    sub_modules = db.relationship("SubModule", back_populates="module", lazy="dynamic")

    def to_dict(self, include_sub_modules=False):
        d = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "project_id": self.project_id,
            "is_active": self.is_active,
        }
        if include_sub_modules:
            d["sub_modules"] = [
                sm.to_dict() for sm in self.sub_modules.filter_by(is_active=True).order_by(SubModule.name)
            ]
        return d


class SubModule(db.Model):
    __tablename__ = "sub_modules"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    module_id = db.Column(
        db.Integer, db.ForeignKey("modules.id", ondelete="CASCADE"), nullable=False, index=True
    )
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    module = db.relationship("Module", back_populates="sub_modules")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "module_id": self.module_id,
            "is_active": self.is_active,
        }


# ═══════════════════════════════════════════════════════════════
# ALLOCATIONS
# ═══════════════════════════════════════════════════════════════
class ProjectAllocation(db.Model):
    __tablename__ = "project_allocations"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    role_id = db.Column(
        db.Integer, db.ForeignKey("roles.id", ondelete="RESTRICT"), nullable=False
    )
    start_date = db.Column(db.Date, default=lambda: datetime.now(timezone.utc).date(), nullable=False)
    end_date = db.Column(db.Date)
    allocation_percentage = db.Column(db.Numeric(5, 2), default=100, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.Index("ix_allocation_user_project", "user_id", "project_id"),
    )

    project = db.relationship("Project")
    user = db.relationship("User")
    role = db.relationship("Role")

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "user_id": self.user_id,
            "user": self.user.to_dict() if self.user else None,
            "role_id": self.role_id,
            "role": self.role.name if self.role else None,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "allocation_percentage": float(self.allocation_percentage)
            if self.allocation_percentage is not None else None,
            "is_active": self.is_active,
            "notes": self.notes,
        }


class ProjectAllocationHistory(db.Model):
    __tablename__ = "project_allocation_history"

    id = db.Column(db.Integer, primary_key=True)
    allocation_id = db.Column(
        db.Integer, db.ForeignKey("project_allocations.id", ondelete="CASCADE"), nullable=False
    )
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role_id = db.Column(db.Integer, db.ForeignKey("roles.id", ondelete="SET NULL"))
    action = db.Column(db.String(30), nullable=False)  # one of ALLOCATION_ACTIONS
    old_value = db.Column(db.Text)
    new_value = db.Column(db.Text)
    changed_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "allocation_id": self.allocation_id,
            "project_id": self.project_id,
            "user_id": self.user_id,
            "role_id": self.role_id,
            "action": self.action,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "changed_by": self.changed_by,
            "notes": self.notes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

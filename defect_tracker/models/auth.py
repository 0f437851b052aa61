"""
Auth Models: designations, users, roles, privileges and privilege grants.

A privilege is an atomic ``(module, action)`` capability. Users receive
privileges through three independent grant tables:

  - UserPrivilege         personal grant, optionally scoped to one project
  - ProjectUserPrivilege  personal grant, always scoped to one project
  - GroupPrivilege        role bundle, reached through a ProjectAllocation
"""

from datetime import datetime, timezone

from defect_tracker.models import db

PRIVILEGE_ACTIONS = ("CREATE", "READ", "UPDATE", "DELETE", "MANAGE")


# ═══════════════════════════════════════════════════════════════
# 1. DESIGNATIONS
# ═══════════════════════════════════════════════════════════════
class Designation(db.Model):
    __tablename__ = "designations"

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


# ═══════════════════════════════════════════════════════════════
# 2. USERS
# ═══════════════════════════════════════════════════════════════
class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(20), unique=True, nullable=False)  # US0001, US0002, ...
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(200), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    phone = db.Column(db.String(30))
    designation_id = db.Column(
        db.Integer, db.ForeignKey("designations.id", ondelete="SET NULL"), nullable=True
    )
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    last_login_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.Index("ix_users_email", "email"),
    )

    designation = db.relationship("Designation")

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    def to_dict(self):
        return {
            "id": self.id,
            "username": self.username,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "full_name": self.full_name,
            "email": self.email,
            "phone": self.phone,
            "designation_id": self.designation_id,
            "designation": self.designation.name if self.designation else None,
            "is_active": self.is_active,
            "last_login_at": self.last_login_at.isoformat() if self.last_login_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


# ═══════════════════════════════════════════════════════════════
# 3. ROLES
# ═══════════════════════════════════════════════════════════════
class Role(db.Model):
    __tablename__ = "roles"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    description = db.Column(db.Text)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    group_privileges = db.relationship(
        "GroupPrivilege", back_populates="role", lazy="dynamic", cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
        }


# ═══════════════════════════════════════════════════════════════
# 4. PRIVILEGES
# ═══════════════════════════════════════════════════════════════
class Privilege(db.Model):
    __tablename__ = "privileges"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text)
    module = db.Column(db.String(50), nullable=False)   # projects, defects, users, ...
    action = db.Column(db.String(10), nullable=False)   # one of PRIVILEGE_ACTIONS
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.UniqueConstraint("module", "action", name="uq_privilege_module_action"),
    )

    @property
    def codename(self):
        return f"{self.module}.{self.action}"

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "module": self.module,
            "action": self.action,
            "is_active": self.is_active,
        }


# ═══════════════════════════════════════════════════════════════
# 5. GROUP PRIVILEGES (role → privilege)
# ═══════════════════════════════════════════════════════════════
class GroupPrivilege(db.Model):
    __tablename__ = "group_privileges"

    id = db.Column(db.Integer, primary_key=True)
    role_id = db.Column(
        db.Integer, db.ForeignKey("roles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    privilege_id = db.Column(
        db.Integer, db.ForeignKey("privileges.id", ondelete="CASCADE"), nullable=False
    )
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    role = db.relationship("Role", back_populates="group_privileges")
    privilege = db.relationship("Privilege")

    def to_dict(self):
        return {
            "id": self.id,
            "role_id": self.role_id,
            "role": self.role.name if self.role else None,
            "privilege_id": self.privilege_id,
            "privilege": self.privilege.to_dict() if self.privilege else None,
            "is_active": self.is_active,
        }


# ═══════════════════════════════════════════════════════════════
# 6. USER PRIVILEGES (personal, optional project scope)
# ═══════════════════════════════════════════════════════════════
class UserPrivilege(db.Model):
    __tablename__ = "user_privileges"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    privilege_id = db.Column(
        db.Integer, db.ForeignKey("privileges.id", ondelete="CASCADE"), nullable=False
    )
    # NULL = project-independent grant
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=True
    )
    granted_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))
    granted_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    expires_at = db.Column(db.DateTime, nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    privilege = db.relationship("Privilege")

    def is_expired(self, now=None):
        if self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at <= now

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "privilege_id": self.privilege_id,
            "privilege": self.privilege.to_dict() if self.privilege else None,
            "project_id": self.project_id,
            "granted_by": self.granted_by,
            "granted_at": self.granted_at.isoformat() if self.granted_at else None,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "is_active": self.is_active,
        }


# ═══════════════════════════════════════════════════════════════
# 7. PROJECT USER PRIVILEGES (personal, mandatory project scope)
# ═══════════════════════════════════════════════════════════════
class ProjectUserPrivilege(db.Model):
    __tablename__ = "project_user_privileges"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    privilege_id = db.Column(
        db.Integer, db.ForeignKey("privileges.id", ondelete="CASCADE"), nullable=False
    )
    granted_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))
    granted_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    privilege = db.relationship("Privilege")

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "project_id": self.project_id,
            "privilege_id": self.privilege_id,
            "privilege": self.privilege.to_dict() if self.privilege else None,
            "granted_by": self.granted_by,
            "granted_at": self.granted_at.isoformat() if self.granted_at else None,
            "is_active": self.is_active,
        }

"""
Notification Models: outbound email audit log and per-user email preferences.
"""

from datetime import datetime, timezone

from defect_tracker.models import db

EMAIL_TYPES = (
    "DEFECT_ASSIGNED",
    "DEFECT_STATUS_CHANGED",
    "PROJECT_ALLOCATED",
    "USER_REGISTERED",
)


class EmailLog(db.Model):
    """
    Outbound email audit log.

    Every email the notification consumer handles is logged here, including
    the ones skipped because of a disabled preference.
    """

    __tablename__ = "email_logs"

    id = db.Column(db.Integer, primary_key=True)
    recipient_email = db.Column(db.String(255), nullable=False, index=True)
    recipient_name = db.Column(db.String(150), nullable=True)
    subject = db.Column(db.String(500), nullable=False)
    template_name = db.Column(db.String(100), nullable=True,
                              comment="Email template used")
    category = db.Column(db.String(30), default="system",
                         comment="Event type that triggered this email")
    status = db.Column(db.String(20), default="queued",
                       comment="queued, sent, failed, skipped")
    error_message = db.Column(db.Text, nullable=True)
    attempts = db.Column(db.Integer, default=0, nullable=False)

    # Linkage
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id", ondelete="SET NULL"),
                           nullable=True, index=True)

    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "recipient_email": self.recipient_email,
            "recipient_name": self.recipient_name,
            "subject": self.subject,
            "template_name": self.template_name,
            "category": self.category,
            "status": self.status,
            "error_message": self.error_message,
            "attempts": self.attempts,
            "project_id": self.project_id,
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<EmailLog {self.id}: {self.subject[:40]} → {self.recipient_email}>"


class EmailPreference(db.Model):
    """Opt-out switch per user and email type. No row means enabled."""

    __tablename__ = "email_preferences"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    email_type = db.Column(db.String(40), nullable=False)  # one of EMAIL_TYPES
    is_enabled = db.Column(db.Boolean, default=True, nullable=False)
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint("user_id", "email_type", name="uq_email_pref_user_type"),
    )

    def to_dict(self):
        return {
            "user_id": self.user_id,
            "email_type": self.email_type,
            "is_enabled": self.is_enabled,
        }

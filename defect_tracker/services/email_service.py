"""
Defect Tracker
Email Service.

Provides email sending with simple format-string templates.
When SMTP is not configured, emails are logged but not sent (dev/test mode).

Every attempt is recorded in EmailLog. Delivery errors are raised back to
the caller (the notification consumer), which owns retries.

Configuration (env vars):
    MAIL_SERVER     SMTP host (default: None → log-only mode)
    MAIL_PORT       SMTP port (default: 587)
    MAIL_USE_TLS    Use TLS (default: true)
    MAIL_USERNAME   SMTP username
    MAIL_PASSWORD   SMTP password
    MAIL_DEFAULT_SENDER  Default from address
"""

from __future__ import annotations

import logging
import smtplib
from datetime import datetime, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any

from flask import current_app
from markupsafe import escape

from defect_tracker.models import db
from defect_tracker.models.notification import EmailLog

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Email Templates
# ═══════════════════════════════════════════════════════════════════════════

_LAYOUT = """
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
    <div style="background: #1e293b; color: white; padding: 16px 24px; border-radius: 8px 8px 0 0;">
        <h2 style="margin: 0; font-size: 18px;">Defect Tracker</h2>
    </div>
    <div style="background: #f8fafc; padding: 24px; border: 1px solid #e2e8f0; border-top: none;">
        {body}
    </div>
</div>
"""

_TEMPLATES: dict[str, dict[str, str]] = {
    "defect_assigned": {
        "subject": "[Defect Tracker] Defect #{defect_id} assigned to you: {title}",
        "html": _LAYOUT.replace("{body}", """
        <p>Hello {recipient_name},</p>
        <p><strong>{assigned_by}</strong> assigned defect <strong>#{defect_id} {title}</strong>
           in project <strong>{project_name}</strong> to you.</p>
        <p>Severity: {severity} &middot; Priority: {priority}</p>
        """),
    },
    "defect_status_changed": {
        "subject": "[Defect Tracker] Defect #{defect_id} is now {new_status}",
        "html": _LAYOUT.replace("{body}", """
        <p>Hello {recipient_name},</p>
        <p>Defect <strong>#{defect_id} {title}</strong> in project <strong>{project_name}</strong>
           moved from <strong>{old_status}</strong> to <strong>{new_status}</strong>.</p>
        <p>Changed by {changed_by}.</p>
        """),
    },
    "project_allocated": {
        "subject": "[Defect Tracker] You were added to {project_name}",
        "html": _LAYOUT.replace("{body}", """
        <p>Hello {recipient_name},</p>
        <p>You were allocated to project <strong>{project_name}</strong> as
           <strong>{role_name}</strong> ({allocation_percentage}%) starting {start_date}.</p>
        """),
    },
    "user_registered": {
        "subject": "[Defect Tracker] Welcome, {recipient_name}",
        "html": _LAYOUT.replace("{body}", """
        <p>Hello {recipient_name},</p>
        <p>Your account was created. Sign in with the username <strong>{username}</strong>.</p>
        """),
    },
}


class EmailService:
    """
    Email sending service with template support.

    In development/test mode (no MAIL_SERVER configured), emails are
    logged to the database but not actually sent via SMTP.
    """

    @staticmethod
    def is_configured() -> bool:
        """Check if SMTP is configured."""
        return bool(current_app.config.get("MAIL_SERVER"))

    @staticmethod
    def get_template(template_name: str) -> dict[str, str] | None:
        """Get an email template by name."""
        return _TEMPLATES.get(template_name)

    @staticmethod
    def render(template_name: str, context: dict[str, Any]) -> tuple[str, str]:
        """Return (subject, html_body) for a template; KeyError if unknown.

        Context values are HTML-escaped in the body; the subject is plain text.
        """
        template = _TEMPLATES[template_name]
        subject = template["subject"].format_map(_SafeDict(context))
        escaped = _SafeDict({key: escape(value) for key, value in context.items()})
        return subject, template["html"].format_map(escaped)

    @classmethod
    def deliver(cls, log: EmailLog, html_body: str) -> EmailLog:
        """
        Attempt delivery for an existing EmailLog row and mark it sent.

        SMTP errors propagate so the caller can record them and retry.
        """
        if not cls.is_configured():
            # Dev/test mode: log only
            log.status = "sent"
            log.sent_at = datetime.now(timezone.utc)
            logger.info(
                "Email (dev mode): to=%s subject='%s' template=%s",
                log.recipient_email, log.subject, log.template_name,
            )
            return log

        cls._send_smtp(to_email=log.recipient_email, to_name=log.recipient_name,
                       subject=log.subject, html_body=html_body)
        log.status = "sent"
        log.sent_at = datetime.now(timezone.utc)
        log.error_message = None
        logger.info("Email sent: to=%s subject='%s'", log.recipient_email, log.subject)
        return log

    @staticmethod
    def create_log(
        *,
        to_email: str,
        to_name: str | None,
        subject: str,
        template_name: str | None,
        category: str,
        project_id: int | None = None,
        status: str = "queued",
    ) -> EmailLog:
        log = EmailLog(
            recipient_email=to_email,
            recipient_name=to_name,
            subject=subject,
            template_name=template_name,
            category=category,
            status=status,
            project_id=project_id,
        )
        db.session.add(log)
        db.session.flush()
        return log

    @staticmethod
    def _send_smtp(*, to_email: str, to_name: str | None,
                   subject: str, html_body: str) -> None:
        """Actually send via SMTP."""
        cfg = current_app.config
        server = cfg.get("MAIL_SERVER")
        port = cfg.get("MAIL_PORT", 587)
        use_tls = cfg.get("MAIL_USE_TLS", True)
        username = cfg.get("MAIL_USERNAME")
        password = cfg.get("MAIL_PASSWORD")
        sender = cfg.get("MAIL_DEFAULT_SENDER", f"noreply@{server}")

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = sender
        msg["To"] = f"{to_name} <{to_email}>" if to_name else to_email
        msg.attach(MIMEText(html_body, "html"))

        with smtplib.SMTP(server, port, timeout=30) as smtp:
            if use_tls:
                smtp.starttls()
            if username and password:
                smtp.login(username, password)
            smtp.send_message(msg)


class _SafeDict(dict):
    """Dict that returns {key} for missing keys instead of raising."""

    def __missing__(self, key):
        return f"{{{key}}}"

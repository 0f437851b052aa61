"""
Defect Tracker
Notification Dispatcher: post-commit email events.

Services publish an event only after their transaction has committed:

    db.session.commit()
    NotificationDispatcher.publish(
        "DEFECT_ASSIGNED", recipient_id=defect.assigned_to,
        context={...}, project_id=defect.project_id,
    )

The consumer renders the template, checks the recipient's email
preference, records an EmailLog row and retries delivery up to
NOTIFICATION_MAX_ATTEMPTS times. It never raises back to the publisher,
so a delivery failure cannot affect the state change that triggered it.

With NOTIFICATIONS_ASYNC the consumer runs in a daemon thread with its own
app context; otherwise (testing) it runs inline.
"""

import logging
import threading
from dataclasses import dataclass, field

from flask import current_app

from defect_tracker.models import db
from defect_tracker.models.auth import User
from defect_tracker.models.notification import EMAIL_TYPES, EmailPreference
from defect_tracker.services.email_service import EmailService

logger = logging.getLogger(__name__)

# Event type → email template
EVENT_TEMPLATES = {
    "DEFECT_ASSIGNED": "defect_assigned",
    "DEFECT_STATUS_CHANGED": "defect_status_changed",
    "PROJECT_ALLOCATED": "project_allocated",
    "USER_REGISTERED": "user_registered",
}


@dataclass
class NotificationEvent:
    event_type: str
    recipient_id: int
    context: dict = field(default_factory=dict)
    project_id: int | None = None


def is_email_enabled(user_id: int, email_type: str) -> bool:
    """Preferences are opt-out: no row means enabled."""
    pref = EmailPreference.query.filter_by(user_id=user_id, email_type=email_type).first()
    return pref is None or pref.is_enabled


class NotificationDispatcher:
    """Publishes notification events and consumes them."""

    @classmethod
    def publish(cls, event_type: str, *, recipient_id: int | None,
                context: dict | None = None, project_id: int | None = None):
        """
        Hand an event to the consumer. Call only after commit.

        Returns the EmailLog when consumed inline, otherwise None.
        """
        if event_type not in EVENT_TEMPLATES:
            raise ValueError(f"Unknown notification event: {event_type}")
        if recipient_id is None:
            return None

        event = NotificationEvent(event_type, recipient_id, dict(context or {}), project_id)
        app = current_app._get_current_object()

        if not app.config.get("NOTIFICATIONS_ASYNC", False):
            return cls.consume(event)

        t = threading.Thread(
            target=cls._consume_in_background,
            args=(app, event),
            daemon=True,
            name=f"notify-{event_type.lower()}",
        )
        t.start()
        return None

    @classmethod
    def _consume_in_background(cls, app, event: NotificationEvent):
        with app.app_context():
            cls.consume(event)

    @classmethod
    def consume(cls, event: NotificationEvent):
        """Deliver one event. Never raises."""
        try:
            return cls._deliver(event)
        except Exception:
            logger.exception(
                "Notification %s for user %s could not be processed",
                event.event_type, event.recipient_id,
            )
            db.session.rollback()
            return None

    # ── Internal ──────────────────────────────────────────────────────────

    @classmethod
    def _deliver(cls, event: NotificationEvent):
        user = db.session.get(User, event.recipient_id)
        if user is None or not user.is_active:
            logger.info("Notification %s dropped: recipient %s missing or inactive",
                        event.event_type, event.recipient_id)
            return None

        template_name = EVENT_TEMPLATES[event.event_type]
        context = {"recipient_name": user.full_name, **event.context}
        subject, html_body = EmailService.render(template_name, context)

        if not is_email_enabled(user.id, event.event_type):
            log = EmailService.create_log(
                to_email=user.email, to_name=user.full_name, subject=subject,
                template_name=template_name, category=event.event_type,
                project_id=event.project_id, status="skipped",
            )
            db.session.commit()
            logger.info("Notification %s skipped for user %s (preference disabled)",
                        event.event_type, user.id)
            return log

        log = EmailService.create_log(
            to_email=user.email, to_name=user.full_name, subject=subject,
            template_name=template_name, category=event.event_type,
            project_id=event.project_id,
        )
        db.session.commit()

        max_attempts = max(1, current_app.config.get("NOTIFICATION_MAX_ATTEMPTS", 3))
        for attempt in range(1, max_attempts + 1):
            log.attempts = attempt
            try:
                EmailService.deliver(log, html_body)
                db.session.commit()
                return log
            except Exception as exc:
                log.status = "failed"
                log.error_message = str(exc)[:1000]
                db.session.commit()
                logger.warning("Email attempt %d/%d failed: to=%s error=%s",
                               attempt, max_attempts, user.email, exc)

        logger.error("Email delivery gave up after %d attempts: to=%s subject='%s'",
                     max_attempts, user.email, subject)
        return log


def valid_email_type(email_type: str) -> bool:
    return email_type in EMAIL_TYPES

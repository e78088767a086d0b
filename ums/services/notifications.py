"""Enrollment email notifications.

Handles:
- Approval confirmation when an enrollment is finalized as approved
- Rejection notice when any approval step is rejected
- Delivery log (``EnrollmentEmailHistory``) for every attempt

Delivery problems never propagate to the workflow: a failed send is logged,
recorded in the history and reported as ``False``.
"""

import logging
import smtplib
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Dict, Optional, Protocol

from jinja2 import Template
from sqlalchemy.orm import Session

from ums.core.config import Settings, get_settings
from ums.db.models import EnrollmentEmailHistory, EmailEventType, EmailStatus

logger = logging.getLogger(__name__)


# Email templates (jinja2)
EMAIL_TEMPLATES = {
    EmailEventType.ENROLLMENT_APPROVED: {
        "name": "enrollment_approved",
        "subject": "[UMS] Enrollment confirmed: {{ course_name }}",
        "body": """
Dear {{ participant_name }},

Your enrollment has been approved.

Course: {{ course_name }}{% if course_code %} ({{ course_code }}){% endif %}
{% if start_at %}Starts: {{ start_at }}
{% endif %}{% if approver_name %}Approved By: {{ approver_name }}
{% endif %}
{% if enrollment_url %}View your enrollment at: {{ enrollment_url }}
{% endif %}
---
UMS
        """,
    },
    EmailEventType.ENROLLMENT_REJECTED: {
        "name": "enrollment_rejected",
        "subject": "[UMS] Enrollment rejected: {{ course_name }}",
        "body": """
Dear {{ participant_name }},

Your enrollment request has been rejected.

Course: {{ course_name }}{% if course_code %} ({{ course_code }}){% endif %}
{% if approver_name %}Rejected By: {{ approver_name }}
{% endif %}Reason: {{ reason or "No reason provided" }}

---
UMS
        """,
    },
}


class NotificationDispatcher(Protocol):
    """What the workflow needs from a notification backend."""

    def send_approval_email(self, subject: Any, course_metadata: Dict[str, Any]) -> bool:
        ...

    def send_rejection_email(
        self, subject: Any, course_metadata: Dict[str, Any], reason: Optional[str] = None
    ) -> bool:
        ...


class EmailNotificationDispatcher:
    """
    Sends enrollment emails over SMTP and logs every attempt.
    """

    def __init__(self, db: Session, settings: Optional[Settings] = None):
        """
        Initialize the dispatcher.

        Args:
            db: Database session used for the delivery log
            settings: Application settings (SMTP configuration)
        """
        self.db = db
        self.settings = settings or get_settings()

    def send_approval_email(self, subject: Any, course_metadata: Dict[str, Any]) -> bool:
        """
        Tell the participant their enrollment was approved.

        Args:
            subject: The enrolled user (needs ``email`` and ``full_name``)
            course_metadata: Course and enrollment details for the template

        Returns:
            True if the email was delivered
        """
        return self._send_email(EmailEventType.ENROLLMENT_APPROVED, subject, course_metadata)

    def send_rejection_email(
        self, subject: Any, course_metadata: Dict[str, Any], reason: Optional[str] = None
    ) -> bool:
        """Tell the participant their enrollment was rejected."""
        context = dict(course_metadata)
        context["reason"] = reason
        return self._send_email(EmailEventType.ENROLLMENT_REJECTED, subject, context)

    def _send_email(self, event_type: EmailEventType, subject: Any, metadata: Dict[str, Any]) -> bool:
        template = EMAIL_TEMPLATES.get(event_type)
        if not template:
            logger.warning("No email template for event type: %s", event_type)
            return False

        context = dict(metadata)
        context.setdefault("participant_name", subject.full_name)
        if context.get("enrollment_id") is not None:
            context.setdefault(
                "enrollment_url",
                f"{self.settings.app_base_url.rstrip('/')}/enrollments/{context['enrollment_id']}",
            )

        email_subject = Template(template["subject"]).render(**context).strip()
        body = Template(template["body"]).render(**context)

        log = EnrollmentEmailHistory(
            enrollment_id=context.get("enrollment_id"),
            event_type=event_type.value,
            recipient=subject.email,
            template_name=template["name"],
            subject=email_subject,
            body=body,
            status=EmailStatus.PENDING.value,
            sent_by=context.get("sent_by"),
        )
        self.db.add(log)
        self.db.flush()

        delivered = False
        try:
            if self._deliver_email(subject.email, email_subject, body):
                log.status = EmailStatus.SENT.value
                log.sent_at = datetime.utcnow()
                delivered = True
            else:
                log.status = EmailStatus.SKIPPED.value
        except Exception as e:
            logger.exception("Failed to send %s email to %s", event_type.value, subject.email)
            log.status = EmailStatus.FAILED.value
            log.error_message = str(e)

        self.db.commit()
        return delivered

    def _deliver_email(self, to_email: str, subject: str, body: str) -> bool:
        """Deliver the email via SMTP. Returns False when SMTP is not configured."""
        if not self.settings.smtp_host:
            logger.warning("SMTP not configured, skipping email delivery")
            return False

        msg = MIMEMultipart()
        msg["From"] = f"{self.settings.smtp_from_name} <{self.settings.smtp_from_email}>"
        msg["To"] = to_email
        msg["Subject"] = subject
        msg.attach(MIMEText(body, "plain"))

        with smtplib.SMTP(
            self.settings.smtp_host, self.settings.smtp_port, timeout=self.settings.smtp_timeout
        ) as server:
            if self.settings.smtp_use_tls:
                server.starttls()
            if self.settings.smtp_user:
                server.login(self.settings.smtp_user, self.settings.smtp_password)
            server.send_message(msg)
        return True

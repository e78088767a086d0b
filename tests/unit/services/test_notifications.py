"""Tests for enrollment email notifications."""

from unittest.mock import patch

import pytest

from ums.core.approval import ApprovalWorkflowService
from ums.core.config import Settings
from ums.db.models import EnrollmentEmailHistory
from ums.services.notifications import EmailNotificationDispatcher
from tests.factories import actor_for, create_course, create_course_tab, create_user


@pytest.fixture
def participant(db_session):
    user = create_user(db_session, full_name="Jordan Learner", email="jordan@example.com")
    db_session.commit()
    return user


@pytest.fixture
def metadata():
    return {
        "enrollment_id": None,
        "course_id": 3,
        "course_name": "Advanced Welding",
        "course_code": "AW-1",
        "start_at": "2030-06-01 09:00",
        "approver_name": "Harper Head",
        "sent_by": None,
    }


def smtp_settings(**overrides):
    values = dict(smtp_host="smtp.example.com", smtp_port=2525, smtp_user="mailer",
                  smtp_password="secret", smtp_use_tls=True)
    values.update(overrides)
    return Settings(_env_file=None, **values)


class TestEmailNotificationDispatcher:

    def test_skipped_when_smtp_not_configured(self, db_session, settings, participant, metadata):
        dispatcher = EmailNotificationDispatcher(db_session, settings)

        assert dispatcher.send_approval_email(participant, metadata) is False

        log = db_session.query(EnrollmentEmailHistory).one()
        assert log.status == "skipped"
        assert log.recipient == "jordan@example.com"
        assert log.sent_at is None

    @patch("ums.services.notifications.smtplib.SMTP")
    def test_approval_email_sent(self, mock_smtp, db_session, participant, metadata):
        server = mock_smtp.return_value.__enter__.return_value
        dispatcher = EmailNotificationDispatcher(db_session, smtp_settings())

        assert dispatcher.send_approval_email(participant, metadata) is True

        mock_smtp.assert_called_once_with("smtp.example.com", 2525, timeout=30)
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("mailer", "secret")
        server.send_message.assert_called_once()
        log = db_session.query(EnrollmentEmailHistory).one()
        assert log.status == "sent"
        assert log.event_type == "enrollment_approved"
        assert log.template_name == "enrollment_approved"
        assert log.subject == "[UMS] Enrollment confirmed: Advanced Welding"
        assert "Dear Jordan Learner" in log.body
        assert "Approved By: Harper Head" in log.body
        assert log.sent_at is not None

    @patch("ums.services.notifications.smtplib.SMTP")
    def test_rejection_email_carries_reason(self, mock_smtp, db_session, participant, metadata):
        dispatcher = EmailNotificationDispatcher(db_session, smtp_settings(smtp_use_tls=False))

        assert dispatcher.send_rejection_email(participant, metadata, reason="Course is full") is True

        mock_smtp.return_value.__enter__.return_value.starttls.assert_not_called()
        log = db_session.query(EnrollmentEmailHistory).one()
        assert log.event_type == "enrollment_rejected"
        assert "Reason: Course is full" in log.body

    @patch("ums.services.notifications.smtplib.SMTP")
    def test_rejection_without_reason(self, mock_smtp, db_session, participant, metadata):
        dispatcher = EmailNotificationDispatcher(db_session, smtp_settings())

        dispatcher.send_rejection_email(participant, metadata)

        assert "No reason provided" in db_session.query(EnrollmentEmailHistory).one().body

    @patch("ums.services.notifications.smtplib.SMTP")
    def test_delivery_failure_is_logged_not_raised(self, mock_smtp, db_session, participant, metadata):
        mock_smtp.side_effect = OSError("connection refused")
        dispatcher = EmailNotificationDispatcher(db_session, smtp_settings())

        assert dispatcher.send_approval_email(participant, metadata) is False

        log = db_session.query(EnrollmentEmailHistory).one()
        assert log.status == "failed"
        assert log.error_message == "connection refused"


class TestEmailHistory:

    def test_history_of_auto_approved_enrollment(self, db_session, settings, participant):
        tab = create_course_tab(db_session)
        course = create_course(db_session, tab=tab)
        db_session.commit()
        service = ApprovalWorkflowService(db_session, EmailNotificationDispatcher(db_session, settings),
                                          settings=settings)

        enrolled = service.enroll(course.id, actor_for(participant))
        history = service.get_email_history(enrolled["id"])

        assert [(h["event_type"], h["status"]) for h in history] == [("enrollment_approved", "skipped")]
        assert "enrollments/%d" % enrolled["id"] in db_session.query(EnrollmentEmailHistory).one().body
        # Undelivered email leaves the enrollment eligible for a resend
        assert enrolled["notification_sent"] is False

"""Celery workers for the UMS enrollment workflow."""

from ums.workers.enrollment_tasks import (
    celery_app,
    resync_course_steps,
    resync_category_steps,
    resend_approval_notification,
)

__all__ = [
    "celery_app",
    "resync_course_steps",
    "resync_category_steps",
    "resend_approval_notification",
]

"""Celery tasks for the enrollment approval workflow.

Bulk step re-syncs are queued after an administrator edits a course tab's
approval chain; they retry when the database or broker is briefly
unreachable. Approval email resends run on their own queue.
"""

from typing import Any, Callable, Dict
import logging

from celery import Celery, shared_task
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.exc import OperationalError

from ums.db.session import SessionLocal
from ums.db.models import User
from ums.core.approval import Actor, ApprovalWorkflowService
from ums.core.config import get_settings
from ums.services.notifications import EmailNotificationDispatcher

logger = logging.getLogger(__name__)
settings = get_settings()

celery_app = Celery(
    'ums',
    broker=settings.celery_broker,
    backend=settings.celery_backend,
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    task_routes={
        'ums.workers.enrollment_tasks.resend_approval_notification': {'queue': 'notifications'},
        'ums.workers.enrollment_tasks.resync_*': {'queue': 'sync'},
    },
    task_default_queue='default',
)

TRANSIENT_ERRORS = (OperationalError, RedisConnectionError, TimeoutError)


def _workflow_service(db) -> ApprovalWorkflowService:
    return ApprovalWorkflowService(db, EmailNotificationDispatcher(db))


def _run_sync(task, label: str, sync: Callable[[ApprovalWorkflowService], Dict[str, Any]]) -> Dict[str, Any]:
    db = SessionLocal()
    try:
        result = sync(_workflow_service(db))
    except TRANSIENT_ERRORS as exc:
        logger.warning("Step re-sync of %s interrupted, retrying: %s", label, exc)
        raise task.retry(exc=exc)
    finally:
        db.close()

    logger.info(
        "%s re-synced: %d synced, %d finalized, %d failed",
        label, len(result["synced"]), len(result["finalized"]), len(result["failed"]),
    )
    return result


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def resync_course_steps(self, course_id: int) -> Dict[str, Any]:
    """Re-sync approval steps for every pending enrollment of a course."""
    return _run_sync(self, f"Course {course_id}", lambda service: service.sync_course(course_id))


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def resync_category_steps(self, category_id: int) -> Dict[str, Any]:
    """
    Re-sync approval steps for every pending enrollment of a course tab.

    Queue after a step definition is added, edited, deactivated or removed.
    """
    return _run_sync(self, f"Course tab {category_id}", lambda service: service.sync_category(category_id))


@shared_task
def resend_approval_notification(enrollment_id: int, requested_by: int) -> Dict[str, Any]:
    """
    Re-send the approval email of an approved enrollment.

    Args:
        enrollment_id: Enrollment ID
        requested_by: ID of the user who asked for the resend

    Returns:
        Enrollment id and whether the email went out
    """
    db = SessionLocal()
    try:
        user = db.get(User, requested_by)
        if user is None:
            return {"error": f"User {requested_by} not found"}

        result = _workflow_service(db).resend_notification(enrollment_id, Actor.from_user(user))
    finally:
        db.close()

    logger.info("Approval email resend for enrollment %s: sent=%s", enrollment_id, result["email_sent"])
    return {"enrollment_id": enrollment_id, "email_sent": result["email_sent"]}

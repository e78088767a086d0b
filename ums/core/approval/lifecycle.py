"""Enrollment creation, restoration and withdrawal."""

import logging
from datetime import datetime
from typing import NamedTuple, Optional

from sqlalchemy import and_, func
from sqlalchemy.orm import Session

from ums.db.models import ApprovalStepRecord, Course, Enrollment
from .actor import Actor
from .errors import (
    CapacityExceededError,
    CourseNotOpenError,
    DuplicateEnrollmentError,
    NotEnrollmentOwnerError,
    NotFoundError,
)
from .states import SEAT_HOLDING_STATES, EnrollmentStatus, EnrollmentTransition
from .sync import StepSyncEngine, SyncResult
from .transitions import apply_transition

logger = logging.getLogger(__name__)


class EnrollmentOutcome(NamedTuple):
    enrollment: Enrollment
    restored: bool
    sync: SyncResult


class EnrollmentLifecycle:
    """Creates, restores and withdraws enrollments."""

    def __init__(self, db: Session, sync_engine: Optional[StepSyncEngine] = None):
        self.db = db
        self.sync_engine = sync_engine or StepSyncEngine(db)

    def enroll(self, course_id: int, actor: Actor) -> EnrollmentOutcome:
        """
        Enroll the actor in a course.

        A soft-deleted enrollment for the same (course, user) pair is restored
        with a freshly generated step set instead of inserting a second row.

        Raises:
            NotFoundError: Course missing or deleted
            CourseNotOpenError: Course not published
            DuplicateEnrollmentError: A live enrollment already exists
            CapacityExceededError: All seats are taken by approved enrollments
        """
        course = self.db.query(Course).filter(
            and_(Course.id == course_id, Course.is_deleted.is_(False))
        ).first()
        if not course:
            raise NotFoundError("Course", course_id)
        if not course.is_published:
            raise CourseNotOpenError()

        existing = self.find_including_deleted(course_id, actor.id)
        if existing is not None and not existing.is_deleted:
            raise DuplicateEnrollmentError()

        if self.approved_count(course_id) >= course.available_seats:
            raise CapacityExceededError()

        if existing is not None:
            enrollment = self._restore(existing, actor)
            outcome = self.sync_engine.regenerate(enrollment)
            logger.info("Restored enrollment %s for user %s", enrollment.id, actor.id)
            return EnrollmentOutcome(enrollment, True, outcome)

        enrollment = Enrollment(
            course_id=course_id,
            user_id=actor.id,
            status=EnrollmentStatus.PENDING.value,
            final_approval=False,
            is_active=True,
            is_deleted=False,
            enrolled_at=datetime.utcnow(),
            created_by=actor.id,
        )
        enrollment.course = course
        self.db.add(enrollment)
        self.db.flush()

        outcome = self.sync_engine.sync_enrollment(enrollment)
        logger.info("Created enrollment %s for user %s in course %s", enrollment.id, actor.id, course_id)
        return EnrollmentOutcome(enrollment, False, outcome)

    def withdraw(self, enrollment_id: int, actor: Actor) -> Enrollment:
        """
        Soft-delete an enrollment and each of its step records.

        Raises:
            NotFoundError: Enrollment missing or already withdrawn
            NotEnrollmentOwnerError: Actor is neither the participant nor a super admin
        """
        enrollment = self.find_active(enrollment_id)
        if not enrollment:
            raise NotFoundError("Enrollment", enrollment_id)
        if enrollment.user_id != actor.id and not actor.is_super_admin:
            raise NotEnrollmentOwnerError()

        records = self.db.query(ApprovalStepRecord).filter(
            and_(
                ApprovalStepRecord.enrollment_id == enrollment.id,
                ApprovalStepRecord.is_deleted.is_(False),
            )
        ).all()
        for record in records:
            record.soft_delete()

        enrollment.soft_delete()
        enrollment.updated_by = actor.id
        enrollment.updated_at = datetime.utcnow()
        self.db.flush()

        logger.info("Withdrew enrollment %s (%d step records)", enrollment.id, len(records))
        return enrollment

    def approved_count(self, course_id: int) -> int:
        """Number of seats held: live, active, approved enrollments."""
        return self.db.query(func.count(Enrollment.id)).filter(
            and_(
                Enrollment.course_id == course_id,
                Enrollment.is_deleted.is_(False),
                Enrollment.is_active.is_(True),
                Enrollment.status.in_([s.value for s in SEAT_HOLDING_STATES]),
            )
        ).scalar() or 0

    def find_active(self, enrollment_id: int) -> Optional[Enrollment]:
        return self.db.query(Enrollment).filter(
            and_(Enrollment.id == enrollment_id, Enrollment.is_deleted.is_(False))
        ).first()

    def find_including_deleted(self, course_id: int, user_id: int) -> Optional[Enrollment]:
        return self.db.query(Enrollment).filter(
            and_(Enrollment.course_id == course_id, Enrollment.user_id == user_id)
        ).first()

    def _restore(self, enrollment: Enrollment, actor: Actor) -> Enrollment:
        enrollment.restore()
        enrollment.is_active = True
        enrollment.enrolled_at = datetime.utcnow()
        enrollment.notification_sent = False
        enrollment.notification_sent_at = None
        apply_transition(self.db, enrollment, EnrollmentTransition.RESTORE, actor=actor)
        self.db.flush()
        return enrollment

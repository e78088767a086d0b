"""Enrollment workflow service.

Provides the high-level API for the enrollment approval workflow:
enrolling, deciding approval steps, excusing, withdrawing, listing, bulk
step synchronisation and email notifications.

Every state-changing call is one unit of work on a single enrollment. The
enrollment row is locked and its step records are re-read after the lock
is taken, the step decision is a conditional update that only succeeds on
an undecided record, and the enrollment's version counter detects
concurrent writers. Emails go out only after the unit of work has
committed and a failed email never undoes a decision.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import and_, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ums.core.config import Settings, get_settings
from ums.core.filters import FilterSpec
from ums.core.organizations import OrganizationDirectory
from ums.db.models import (
    ApprovalStepRecord,
    Course,
    Enrollment,
    EnrollmentEmailHistory,
    EnrollmentHistory,
    User,
)
from .actor import Actor
from .authorizer import ApprovalAuthorizer
from .errors import (
    AlreadyDecidedError,
    AlreadyFinalizedError,
    ConcurrentModificationError,
    DuplicateEnrollmentError,
    ExcuseNotAvailableError,
    ExcuseWindowClosedError,
    InvalidLegacyPathError,
    InvalidStateError,
    NotEnrollmentOwnerError,
    NotExcusableError,
    NotFoundError,
    SelfApprovalError,
    WorkflowError,
)
from .lifecycle import EnrollmentLifecycle
from .states import EnrollmentStatus, EnrollmentTransition, StepDecision
from .sync import StepSyncEngine
from .transitions import apply_transition

logger = logging.getLogger(__name__)


class ApprovalWorkflowService:
    """
    High-level service for course enrollment approvals.

    Handles:
    - Enrollment creation, restoration and withdrawal
    - Step-by-step approval and rejection
    - Legacy direct decisions for enrollments without steps
    - Excusing from approved enrollments
    - Lazy and bulk step synchronisation
    - Approval and rejection emails
    """

    def __init__(
        self,
        db: Session,
        dispatcher,
        *,
        settings: Optional[Settings] = None,
        organizations: Optional[OrganizationDirectory] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the workflow service.

        Args:
            db: Database session
            dispatcher: Notification dispatcher (approval and rejection emails)
            settings: Application settings
            organizations: Organization scoping for listings
            clock: Returns the current UTC time
        """
        self.db = db
        self.dispatcher = dispatcher
        self.settings = settings or get_settings()
        self.organizations = organizations
        self.clock = clock or datetime.utcnow
        self.authorizer = ApprovalAuthorizer()
        self.sync_engine = StepSyncEngine(db)
        self.lifecycle = EnrollmentLifecycle(db, self.sync_engine)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def enroll(self, course_id: int, actor: Actor) -> Dict[str, Any]:
        """Enroll the actor in a course, restoring a withdrawn enrollment if one exists."""
        try:
            outcome = self.lifecycle.enroll(course_id, actor)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise DuplicateEnrollmentError()
        except WorkflowError:
            self.db.rollback()
            raise

        enrollment = outcome.enrollment
        if outcome.sync.finalized:
            self._notify_approved(enrollment)

        result = self._enrollment_to_dict(enrollment)
        result["restored"] = outcome.restored
        return result

    def withdraw(self, enrollment_id: int, actor: Actor) -> Dict[str, Any]:
        """Withdraw an enrollment (soft delete, cascading to its step records)."""
        try:
            enrollment = self.lifecycle.withdraw(enrollment_id, actor)
            self.db.commit()
        except WorkflowError:
            self.db.rollback()
            raise
        return self._enrollment_to_dict(enrollment, records=[])

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def decide_step(
        self,
        enrollment_id: int,
        step_definition_id: int,
        decision: StepDecision,
        actor: Actor,
        *,
        comment: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Approve or reject one approval step.

        The enrollment's records are reconciled with the live chain first,
        so steps added since enrollment must be decided as well. Approving
        the last live pending step finalizes the enrollment as approved;
        rejecting any step finalizes it as rejected.

        Raises:
            NotFoundError: Enrollment or step does not exist
            AlreadyFinalizedError, AlreadyDecidedError, PredecessorIncompleteError,
            SelfApprovalError, WrongDepartmentError, NotHeadError, MissingRoleError:
                The actor may not decide this step now
            ConcurrentModificationError: Another writer changed the enrollment
        """
        try:
            enrollment = self._lock_enrollment(enrollment_id)
            chain = self.sync_engine.sync_enrollment(enrollment)
            finalized = False
            if not chain.finalized:
                finalized = self._record_decision(enrollment, step_definition_id, decision, actor, comment)
            self._commit()
        except WorkflowError:
            self.db.rollback()
            raise

        if chain.finalized:
            # Nothing was left to decide once the chain was brought up to date
            self._notify_approved(enrollment)
            raise AlreadyFinalizedError()

        logger.info(
            "Step %s on enrollment %s %s by user %s",
            step_definition_id, enrollment_id,
            "approved" if decision is StepDecision.APPROVE else "rejected", actor.id,
        )

        if finalized and decision is StepDecision.APPROVE:
            self._notify_approved(enrollment, approver=actor)
        elif finalized:
            self._notify_rejected(enrollment, approver=actor, reason=comment)

        return self._enrollment_to_dict(enrollment)

    def _record_decision(
        self,
        enrollment: Enrollment,
        step_definition_id: int,
        decision: StepDecision,
        actor: Actor,
        comment: Optional[str],
    ) -> bool:
        """Decide one step of a locked, reconciled enrollment. Returns whether it finalized."""
        records = self._load_records(enrollment.id)
        verdict = self.authorizer.authorize(enrollment, records, step_definition_id, actor, decision)
        record = verdict.raise_for_denial(step_definition_id)

        now = self.clock()
        values = {
            ApprovalStepRecord.approved_by: actor.id,
            ApprovalStepRecord.decided_at: now,
            ApprovalStepRecord.comments: comment,
        }
        if decision is StepDecision.APPROVE:
            values[ApprovalStepRecord.approved] = True
        else:
            values[ApprovalStepRecord.rejected] = True

        updated = self.db.query(ApprovalStepRecord).filter(
            and_(
                ApprovalStepRecord.id == record.id,
                ApprovalStepRecord.approved.is_(False),
                ApprovalStepRecord.rejected.is_(False),
                ApprovalStepRecord.is_deleted.is_(False),
            )
        ).update(values, synchronize_session=False)
        if not updated:
            raise AlreadyDecidedError()

        if decision is StepDecision.REJECT:
            apply_transition(self.db, enrollment, EnrollmentTransition.REJECT, actor=actor, comment=comment)
            return True

        if self.authorizer.next_pending_record(self._load_records(enrollment.id)) is None:
            apply_transition(self.db, enrollment, EnrollmentTransition.APPROVE, actor=actor, comment=comment)
            return True

        enrollment.updated_at = now
        enrollment.updated_by = actor.id
        return False

    def approve_step(self, enrollment_id: int, step_definition_id: int, actor: Actor, *,
                     comment: Optional[str] = None) -> Dict[str, Any]:
        return self.decide_step(enrollment_id, step_definition_id, StepDecision.APPROVE, actor, comment=comment)

    def reject_step(self, enrollment_id: int, step_definition_id: int, actor: Actor, *,
                    comment: Optional[str] = None) -> Dict[str, Any]:
        return self.decide_step(enrollment_id, step_definition_id, StepDecision.REJECT, actor, comment=comment)

    def legacy_decide(
        self,
        enrollment_id: int,
        decision: StepDecision,
        actor: Actor,
        *,
        comment: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Approve or reject an enrollment directly, bypassing the step chain.

        Only valid for enrollments without any step records.

        Raises:
            NotFoundError: Enrollment does not exist
            AlreadyFinalizedError: Enrollment already decided
            InvalidLegacyPathError: The enrollment has step records
            SelfApprovalError: Actor is the participant
            PermissionDeniedError: Actor lacks enrollments:approve / enrollments:reject
        """
        try:
            enrollment = self._lock_enrollment(enrollment_id)
            if enrollment.final_approval:
                raise AlreadyFinalizedError()
            if self._load_records(enrollment.id):
                raise InvalidLegacyPathError()
            if enrollment.user_id == actor.id:
                raise SelfApprovalError()

            transition = (
                EnrollmentTransition.LEGACY_APPROVE if decision is StepDecision.APPROVE
                else EnrollmentTransition.LEGACY_REJECT
            )
            apply_transition(self.db, enrollment, transition, actor=actor, comment=comment)
            self._commit()
        except WorkflowError:
            self.db.rollback()
            raise

        if decision is StepDecision.APPROVE:
            self._notify_approved(enrollment, approver=actor)
        else:
            self._notify_rejected(enrollment, approver=actor, reason=comment)

        return self._enrollment_to_dict(enrollment)

    def excuse(self, enrollment_id: int, actor: Actor) -> Dict[str, Any]:
        """
        Excuse the participant from an approved enrollment.

        Allowed only for the participant, only while approved and only
        strictly before course start minus the excuse window.

        Raises:
            NotFoundError: Enrollment does not exist
            NotEnrollmentOwnerError: Actor is not the participant
            NotExcusableError: Enrollment is not approved
            ExcuseNotAvailableError: Course has no start date or no excuse window
            ExcuseWindowClosedError: The deadline has passed
        """
        try:
            enrollment = self._lock_enrollment(enrollment_id)
            if enrollment.user_id != actor.id:
                raise NotEnrollmentOwnerError()
            if enrollment.status != EnrollmentStatus.APPROVED.value:
                raise NotExcusableError()

            deadline = self.excuse_deadline(enrollment.course)
            if not self.clock() < deadline:
                raise ExcuseWindowClosedError(deadline=deadline.isoformat())

            apply_transition(self.db, enrollment, EnrollmentTransition.EXCUSE, actor=actor)
            self._commit()
        except WorkflowError:
            self.db.rollback()
            raise

        return self._enrollment_to_dict(enrollment)

    def excuse_deadline(self, course: Course) -> datetime:
        """Latest moment (exclusive) at which an approved participant may excuse themselves."""
        if course.start_at is None:
            raise ExcuseNotAvailableError("This course has no start date")
        # A window of zero hours counts as unset
        hours = course.course_tab.excuse_time_hours if course.course_tab is not None else None
        if not hours or hours <= 0:
            hours = self.settings.default_excuse_window_hours
        if not hours or hours <= 0:
            raise ExcuseNotAvailableError("No excuse window is configured for this course")
        return course.start_at - timedelta(hours=hours)

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def resend_notification(self, enrollment_id: int, actor: Actor) -> Dict[str, Any]:
        """
        Re-send the approval email for an approved enrollment.

        Sets notification_sent and a fresh notification_sent_at when the
        email goes out.
        """
        enrollment = self._get_enrollment(enrollment_id)
        if enrollment.status != EnrollmentStatus.APPROVED.value:
            raise InvalidStateError("Only approved enrollments have a confirmation email")

        sent = self._dispatch_approval(enrollment, sender=actor)
        if sent:
            enrollment.notification_sent = True
            enrollment.notification_sent_at = self.clock()
            self._commit()

        result = self._enrollment_to_dict(enrollment)
        result["email_sent"] = sent
        return result

    def get_email_history(self, enrollment_id: int) -> List[Dict[str, Any]]:
        self._get_enrollment(enrollment_id, include_deleted=True)
        rows = self.db.query(EnrollmentEmailHistory).filter(
            EnrollmentEmailHistory.enrollment_id == enrollment_id
        ).order_by(EnrollmentEmailHistory.created_at.desc(), EnrollmentEmailHistory.id.desc()).all()
        return [
            {
                "id": row.id,
                "event_type": row.event_type,
                "recipient": row.recipient,
                "subject": row.subject,
                "status": row.status,
                "error_message": row.error_message,
                "sent_at": row.sent_at,
                "created_at": row.created_at,
            }
            for row in rows
        ]

    def _notify_approved(self, enrollment: Enrollment, approver: Optional[Actor] = None) -> bool:
        """Send the approval email once, guarded by the notification_sent flag."""
        enrollment_id = enrollment.id
        claimed = self.db.query(Enrollment).filter(
            and_(Enrollment.id == enrollment_id, Enrollment.notification_sent.is_(False))
        ).update(
            {Enrollment.notification_sent: True, Enrollment.notification_sent_at: self.clock()},
            synchronize_session=False,
        )
        self.db.commit()
        if not claimed:
            logger.debug("Approval email for enrollment %s already claimed", enrollment_id)
            return False

        sent = self._dispatch_approval(enrollment, approver=approver)
        if not sent:
            # Leave the enrollment eligible for an explicit resend
            self.db.query(Enrollment).filter(Enrollment.id == enrollment_id).update(
                {Enrollment.notification_sent: False, Enrollment.notification_sent_at: None},
                synchronize_session=False,
            )
            self.db.commit()
        return sent

    def _dispatch_approval(self, enrollment: Enrollment, approver: Optional[Actor] = None,
                           sender: Optional[Actor] = None) -> bool:
        enrollment_id = enrollment.id
        try:
            sent = bool(self.dispatcher.send_approval_email(
                enrollment.user, self._course_metadata(enrollment, approver, sender)
            ))
        except Exception:
            logger.exception("Approval email failed for enrollment %s", enrollment_id)
            self.db.rollback()
            sent = False
        if not sent:
            logger.warning("Approval email for enrollment %s was not delivered", enrollment_id)
        return sent

    def _notify_rejected(self, enrollment: Enrollment, approver: Optional[Actor] = None,
                         reason: Optional[str] = None) -> bool:
        enrollment_id = enrollment.id
        try:
            sent = bool(self.dispatcher.send_rejection_email(
                enrollment.user, self._course_metadata(enrollment, approver), reason
            ))
        except Exception:
            logger.exception("Rejection email failed for enrollment %s", enrollment_id)
            self.db.rollback()
            sent = False
        if not sent:
            logger.warning("Rejection email for enrollment %s was not delivered", enrollment_id)
        return sent

    def _notify_finalized(self, enrollment_ids: Iterable[int]) -> None:
        for enrollment_id in enrollment_ids:
            enrollment = self.db.query(Enrollment).filter(Enrollment.id == enrollment_id).first()
            if enrollment is not None and enrollment.status == EnrollmentStatus.APPROVED.value:
                self._notify_approved(enrollment)

    def _course_metadata(self, enrollment: Enrollment, approver: Optional[Actor] = None,
                         sender: Optional[Actor] = None) -> Dict[str, Any]:
        course = enrollment.course
        return {
            "enrollment_id": enrollment.id,
            "course_id": course.id,
            "course_name": course.name,
            "course_code": course.code,
            "course_tab": course.course_tab.name if course.course_tab else None,
            "start_at": course.start_at.strftime("%Y-%m-%d %H:%M") if course.start_at else None,
            "approver_name": approver.display_name if approver else None,
            "sent_by": (sender or approver).id if (sender or approver) else None,
        }

    # ------------------------------------------------------------------
    # Synchronisation
    # ------------------------------------------------------------------

    def sync_course(self, course_id: int) -> Dict[str, Any]:
        """Re-sync step records of every pending enrollment in a course."""
        course = self.db.query(Course).filter(Course.id == course_id).first()
        if not course:
            raise NotFoundError("Course", course_id)
        return self._run_sync(self.sync_engine.pending_enrollments_for_course(course_id))

    def sync_category(self, category_id: int) -> Dict[str, Any]:
        """Re-sync step records of every pending enrollment in a course tab."""
        return self._run_sync(self.sync_engine.pending_enrollments_for_category(category_id))

    def _run_sync(self, enrollments: List[Enrollment]) -> Dict[str, Any]:
        results = self.sync_engine.sync_enrollments(enrollments)
        self.db.commit()
        self._notify_finalized(results["finalized"])
        return results

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_course_enrollments(
        self,
        course_id: int,
        actor: Actor,
        *,
        status: Optional[str] = None,
        search: Optional[str] = None,
        final_approval: Optional[bool] = None,
        page: int = 1,
        per_page: int = 20,
    ) -> Tuple[List[Dict[str, Any]], int]:
        """List a course's enrollments, reconciling pending ones first."""
        course = self.db.query(Course).filter(
            and_(Course.id == course_id, Course.is_deleted.is_(False))
        ).first()
        if not course or not self._can_see_organization(actor, course.organization_id):
            raise NotFoundError("Course", course_id)

        self._run_sync(self.sync_engine.pending_enrollments_for_course(course_id))

        spec = (
            FilterSpec()
            .where(Enrollment.course_id == course_id)
            .where(Enrollment.is_deleted.is_(False))
            .when(status, lambda v: Enrollment.status == v)
            .when(final_approval, lambda v: Enrollment.final_approval.is_(v))
            .when(search, lambda v: or_(User.full_name.ilike(f"%{v}%"), User.email.ilike(f"%{v}%")))
        )
        query = spec.apply(self.db.query(Enrollment).join(User, Enrollment.user_id == User.id))

        total = query.count()
        enrollments = query.order_by(Enrollment.enrolled_at.desc(), Enrollment.id.desc()).offset(
            (page - 1) * per_page
        ).limit(per_page).all()

        return [self._enrollment_to_dict(e) for e in enrollments], total

    def list_pending_head_approvals(
        self,
        actor: Actor,
        *,
        page: int = 1,
        per_page: int = 20,
    ) -> Tuple[List[Dict[str, Any]], int]:
        """Enrollments in the actor's department whose next step is a head approval."""
        if not actor.is_department_head or actor.department_id is None:
            return [], 0

        candidates = self.db.query(Enrollment).join(User, Enrollment.user_id == User.id).filter(
            and_(
                User.department_id == actor.department_id,
                Enrollment.user_id != actor.id,
                Enrollment.is_deleted.is_(False),
                Enrollment.final_approval.is_(False),
            )
        ).order_by(Enrollment.enrolled_at.asc(), Enrollment.id.asc()).all()

        self._run_sync(candidates)

        matching = []
        for enrollment in candidates:
            records = self._load_records(enrollment.id)
            if self.authorizer.awaits_head_of(enrollment, records, actor):
                matching.append((enrollment, records))

        start = (page - 1) * per_page
        items = [self._enrollment_to_dict(e, records=r) for e, r in matching[start:start + per_page]]
        return items, len(matching)

    def get_enrollment_for_user(self, course_id: int, actor: Actor) -> Optional[Dict[str, Any]]:
        """The actor's own live enrollment in a course, if any."""
        enrollment = self.db.query(Enrollment).filter(
            and_(
                Enrollment.course_id == course_id,
                Enrollment.user_id == actor.id,
                Enrollment.is_deleted.is_(False),
            )
        ).first()
        if not enrollment:
            return None
        self._lazy_sync(enrollment)
        return self._enrollment_to_dict(enrollment)

    def get_enrollment_detail(self, enrollment_id: int, actor: Actor) -> Dict[str, Any]:
        enrollment = self._get_enrollment(enrollment_id)
        if enrollment.user_id != actor.id and not self._can_see_organization(
            actor, enrollment.course.organization_id
        ):
            raise NotFoundError("Enrollment", enrollment_id)
        self._lazy_sync(enrollment)
        return self._enrollment_to_dict(enrollment)

    def get_history(self, enrollment_id: int) -> List[EnrollmentHistory]:
        self._get_enrollment(enrollment_id, include_deleted=True)
        return self.db.query(EnrollmentHistory).filter(
            EnrollmentHistory.enrollment_id == enrollment_id
        ).order_by(EnrollmentHistory.id.asc()).all()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _lazy_sync(self, enrollment: Enrollment) -> None:
        if enrollment.final_approval:
            return
        self._run_sync([enrollment])

    def _can_see_organization(self, actor: Actor, organization_id: Optional[int]) -> bool:
        if self.organizations is None:
            return True
        scope = self.organizations.scope_organization_id(actor)
        return scope is None or scope == organization_id

    def _get_enrollment(self, enrollment_id: int, include_deleted: bool = False) -> Enrollment:
        query = self.db.query(Enrollment).filter(Enrollment.id == enrollment_id)
        if not include_deleted:
            query = query.filter(Enrollment.is_deleted.is_(False))
        enrollment = query.first()
        if not enrollment:
            raise NotFoundError("Enrollment", enrollment_id)
        return enrollment

    def _lock_enrollment(self, enrollment_id: int) -> Enrollment:
        enrollment = self.db.query(Enrollment).filter(
            and_(Enrollment.id == enrollment_id, Enrollment.is_deleted.is_(False))
        ).with_for_update().populate_existing().first()
        if not enrollment:
            raise NotFoundError("Enrollment", enrollment_id)
        return enrollment

    def _load_records(self, enrollment_id: int) -> List[ApprovalStepRecord]:
        return self.db.query(ApprovalStepRecord).filter(
            and_(
                ApprovalStepRecord.enrollment_id == enrollment_id,
                ApprovalStepRecord.is_deleted.is_(False),
            )
        ).populate_existing().order_by(ApprovalStepRecord.id.asc()).all()

    def _commit(self) -> None:
        try:
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            raise ConcurrentModificationError()

    def _enrollment_to_dict(
        self,
        enrollment: Enrollment,
        records: Optional[List[ApprovalStepRecord]] = None,
    ) -> Dict[str, Any]:
        """Convert an enrollment and its live step records to a dictionary."""
        if records is None:
            records = [] if enrollment.is_deleted else self._load_records(enrollment.id)
        steps = sorted(
            records,
            key=lambda r: (r.step_definition.order if r.step_definition else 0, r.id or 0),
        )
        pending = self.authorizer.next_pending_record(steps)
        user = enrollment.user

        return {
            "id": enrollment.id,
            "course_id": enrollment.course_id,
            "user_id": enrollment.user_id,
            "user_name": user.full_name if user else None,
            "user_email": user.email if user else None,
            "status": enrollment.status,
            "final_approval": enrollment.final_approval,
            "is_active": enrollment.is_active,
            "is_deleted": enrollment.is_deleted,
            "enrolled_at": enrollment.enrolled_at,
            "notification_sent": enrollment.notification_sent,
            "notification_sent_at": enrollment.notification_sent_at,
            "updated_at": enrollment.updated_at,
            "next_step_definition_id": (
                pending.step_definition_id if pending and not enrollment.final_approval else None
            ),
            "steps": [self._record_to_dict(r) for r in steps],
        }

    @staticmethod
    def _record_to_dict(record: ApprovalStepRecord) -> Dict[str, Any]:
        definition = record.step_definition
        return {
            "id": record.id,
            "step_definition_id": record.step_definition_id,
            "order": definition.order if definition else None,
            "kind": definition.kind if definition else None,
            "role_id": definition.role_id if definition else None,
            "role_name": definition.role.name if definition and definition.role else None,
            "is_live": bool(definition and definition.is_live),
            "approved": record.approved,
            "rejected": record.rejected,
            "approved_by": record.approved_by,
            "approver_name": record.approver.full_name if record.approver else None,
            "decided_at": record.decided_at,
            "comments": record.comments,
        }

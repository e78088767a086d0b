"""Reconciliation of enrollment step records with the configured chain.

Approval chains can be edited at any time, including after people have
enrolled. The sync engine brings an enrollment's step records back in line
with the live step definitions of its course tab:

- a live definition without a non-deleted record gets a fresh pending record
- an undecided record whose definition is no longer live is soft-deleted
- decided records are never touched

If nothing remains to approve afterwards the enrollment is auto-approved.
Each enrollment is reconciled inside its own savepoint so that a failure
leaves neither half-created step sets nor aborted sibling enrollments.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, NamedTuple, Optional

from sqlalchemy import and_
from sqlalchemy.orm import Session

from ums.db.models import ApprovalStepDefinition, ApprovalStepRecord, Course, Enrollment
from .authorizer import live_records
from .states import EnrollmentTransition
from .transitions import apply_transition

logger = logging.getLogger(__name__)


class SyncResult(NamedTuple):
    enrollment_id: int
    created: int = 0
    removed: int = 0
    finalized: bool = False


class StepSyncEngine:
    """Keeps step records congruent with live step definitions."""

    def __init__(self, db: Session):
        self.db = db

    def live_definitions(self, category_id: int) -> List[ApprovalStepDefinition]:
        """Snapshot of the live definitions of a course tab, in chain order."""
        return self.db.query(ApprovalStepDefinition).filter(
            and_(
                ApprovalStepDefinition.category_id == category_id,
                ApprovalStepDefinition.is_active.is_(True),
                ApprovalStepDefinition.is_deleted.is_(False),
            )
        ).order_by(ApprovalStepDefinition.order.asc(), ApprovalStepDefinition.id.asc()).all()

    def sync_enrollment(
        self,
        enrollment: Enrollment,
        definitions: Optional[List[ApprovalStepDefinition]] = None,
    ) -> SyncResult:
        """
        Reconcile one enrollment.

        Args:
            enrollment: Enrollment to reconcile
            definitions: Snapshot of live definitions; read from the store if omitted

        Returns:
            Counts of created and removed records, and whether the
            enrollment was auto-approved

        Finalized and withdrawn enrollments are left alone.
        """
        if enrollment.is_deleted or enrollment.final_approval:
            return SyncResult(enrollment.id)

        if definitions is None:
            definitions = self.live_definitions(enrollment.course.course_tab_id)

        with self.db.begin_nested():
            # Same serialization point as step decisions
            self._lock(enrollment)
            if enrollment.final_approval:
                return SyncResult(enrollment.id)

            records = self._current_records(enrollment.id)
            live_ids = {d.id for d in definitions}
            covered = {r.step_definition_id for r in records}

            created = []
            for definition in definitions:
                if definition.id in covered:
                    continue
                record = ApprovalStepRecord(
                    enrollment_id=enrollment.id,
                    step_definition_id=definition.id,
                    approved=False,
                    rejected=False,
                    is_deleted=False,
                )
                record.step_definition = definition
                self.db.add(record)
                created.append(record)

            removed = 0
            for record in records:
                if record.step_definition_id not in live_ids and not record.is_decided:
                    record.soft_delete()
                    removed += 1

            if created or removed:
                enrollment.updated_at = datetime.utcnow()
            self.db.flush()

            finalized = self._finalize_if_satisfied(enrollment, records + created)

        if created or removed or finalized:
            logger.info(
                "Synced enrollment %s: +%d steps, -%d steps%s",
                enrollment.id, len(created), removed, ", auto-approved" if finalized else "",
            )
        return SyncResult(enrollment.id, len(created), removed, finalized)

    def regenerate(self, enrollment: Enrollment) -> SyncResult:
        """Soft-delete every existing record and build a fresh step set."""
        for record in self._current_records(enrollment.id):
            record.soft_delete()
        self.db.flush()
        return self.sync_enrollment(enrollment)

    def sync_enrollments(self, enrollments: Iterable[Enrollment]) -> Dict[str, Any]:
        """
        Reconcile many enrollments, continuing past individual failures.

        Definitions are read once per course tab for the whole pass.

        Returns:
            Summary of results
        """
        results: Dict[str, Any] = {"synced": [], "finalized": [], "failed": []}
        snapshots: Dict[int, List[ApprovalStepDefinition]] = {}

        for enrollment in enrollments:
            try:
                category_id = enrollment.course.course_tab_id
                if category_id not in snapshots:
                    snapshots[category_id] = self.live_definitions(category_id)
                outcome = self.sync_enrollment(enrollment, snapshots[category_id])
                results["synced"].append(enrollment.id)
                if outcome.finalized:
                    results["finalized"].append(enrollment.id)
            except Exception as e:
                logger.exception("Step sync failed for enrollment %s", enrollment.id)
                results["failed"].append({
                    "id": enrollment.id,
                    "error": str(e),
                })

        return results

    def pending_enrollments_for_course(self, course_id: int) -> List[Enrollment]:
        return self.db.query(Enrollment).filter(
            and_(
                Enrollment.course_id == course_id,
                Enrollment.is_deleted.is_(False),
                Enrollment.final_approval.is_(False),
            )
        ).order_by(Enrollment.id.asc()).all()

    def pending_enrollments_for_category(self, category_id: int) -> List[Enrollment]:
        return self.db.query(Enrollment).join(Course, Enrollment.course_id == Course.id).filter(
            and_(
                Course.course_tab_id == category_id,
                Enrollment.is_deleted.is_(False),
                Enrollment.final_approval.is_(False),
            )
        ).order_by(Enrollment.id.asc()).all()

    def _lock(self, enrollment: Enrollment) -> None:
        self.db.query(Enrollment).filter(Enrollment.id == enrollment.id).with_for_update().populate_existing().one()

    def _current_records(self, enrollment_id: int) -> List[ApprovalStepRecord]:
        return self.db.query(ApprovalStepRecord).filter(
            and_(
                ApprovalStepRecord.enrollment_id == enrollment_id,
                ApprovalStepRecord.is_deleted.is_(False),
            )
        ).populate_existing().order_by(ApprovalStepRecord.id.asc()).all()

    def _finalize_if_satisfied(self, enrollment: Enrollment, records: List[ApprovalStepRecord]) -> bool:
        chain = live_records(records)
        if any(not r.approved for r in chain):
            return False
        apply_transition(self.db, enrollment, EnrollmentTransition.AUTO_APPROVE)
        self.db.flush()
        return True

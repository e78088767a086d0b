"""Persisting enrollment status transitions."""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ums.db.models import Enrollment, EnrollmentHistory
from .actor import Actor
from .machine import EnrollmentStateMachine
from .states import EnrollmentStatus, EnrollmentTransition, is_finalized


def apply_transition(
    db: Session,
    enrollment: Enrollment,
    transition: EnrollmentTransition,
    *,
    actor: Optional[Actor] = None,
    comment: Optional[str] = None,
) -> EnrollmentStatus:
    """
    Run ``transition`` through the state machine and persist the result.

    Keeps ``final_approval`` in line with the new status and appends an
    ``EnrollmentHistory`` row. System transitions pass no actor.

    Raises:
        TransitionError: If the transition is invalid from the current status
        PermissionDeniedError: If the actor lacks a required permission
    """
    machine = EnrollmentStateMachine(
        enrollment.id,
        EnrollmentStatus(enrollment.status),
        actor_permissions=actor.permissions if actor else ["*:*"],
    )

    old_status = enrollment.status
    new_status = machine.transition(transition, actor_id=actor.id if actor else None)

    enrollment.status = new_status.value
    enrollment.final_approval = is_finalized(new_status)
    enrollment.updated_at = datetime.utcnow()
    if actor:
        enrollment.updated_by = actor.id

    db.add(EnrollmentHistory(
        enrollment_id=enrollment.id,
        from_status=old_status,
        to_status=new_status.value,
        transition=transition.value,
        actor_id=actor.id if actor else None,
        comment=comment,
    ))

    return new_status

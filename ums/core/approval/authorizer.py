"""Eligibility checks for deciding an approval step.

The authorizer is pure: it looks at an enrollment, its step records and
the acting user, and answers whether the actor may decide a given step
right now. Checks run in a fixed order and the first failure wins:

1. the enrollment is not finalized
2. the step exists, is live and is undecided
3. every live step with a lower order is approved (approve only)
4. the actor is not the enrolled participant
5. the actor is the participant's department head, or holds the step role

Rejection skips the ordering check. A rejection finalizes the whole
enrollment, so any eligible approver may reject at their step.
"""

from enum import Enum
from typing import Iterable, List, NamedTuple, Optional

from ums.db.models import ApprovalStepRecord, Enrollment
from .actor import Actor
from .errors import (
    AlreadyDecidedError,
    AlreadyFinalizedError,
    MissingRoleError,
    NotFoundError,
    NotHeadError,
    PredecessorIncompleteError,
    SelfApprovalError,
    WrongDepartmentError,
)
from .states import StepDecision, StepKind


class DenialReason(str, Enum):
    ALREADY_FINALIZED = "already_finalized"
    NOT_FOUND = "not_found"
    ALREADY_DECIDED = "already_decided"
    PREDECESSOR_INCOMPLETE = "predecessor_incomplete"
    SELF_APPROVAL = "self_approval"
    WRONG_DEPARTMENT = "wrong_department"
    NOT_HEAD = "not_head"
    MISSING_ROLE = "missing_role"


class AuthorizationVerdict(NamedTuple):
    allowed: bool
    reason: Optional[DenialReason] = None
    record: Optional[ApprovalStepRecord] = None

    def raise_for_denial(self, step_definition_id: Optional[int] = None) -> ApprovalStepRecord:
        """Raise the workflow error matching the denial, or return the record."""
        if self.allowed:
            return self.record
        if self.reason is DenialReason.NOT_FOUND:
            raise NotFoundError("Approval step", step_definition_id)
        raise _DENIAL_ERRORS[self.reason]()


_DENIAL_ERRORS = {
    DenialReason.ALREADY_FINALIZED: AlreadyFinalizedError,
    DenialReason.ALREADY_DECIDED: AlreadyDecidedError,
    DenialReason.PREDECESSOR_INCOMPLETE: PredecessorIncompleteError,
    DenialReason.SELF_APPROVAL: SelfApprovalError,
    DenialReason.WRONG_DEPARTMENT: WrongDepartmentError,
    DenialReason.NOT_HEAD: NotHeadError,
    DenialReason.MISSING_ROLE: MissingRoleError,
}


def live_records(records: Iterable[ApprovalStepRecord]) -> List[ApprovalStepRecord]:
    """Non-deleted records whose definition is still live, in chain order."""
    live = [
        r for r in records
        if not r.is_deleted and r.step_definition is not None and r.step_definition.is_live
    ]
    return sorted(live, key=lambda r: (r.step_definition.order, r.id or 0))


def _deny(reason: DenialReason, record: Optional[ApprovalStepRecord] = None) -> AuthorizationVerdict:
    return AuthorizationVerdict(False, reason, record)


class ApprovalAuthorizer:
    """Decides whether an actor may decide a step on an enrollment."""

    def authorize(
        self,
        enrollment: Enrollment,
        records: Iterable[ApprovalStepRecord],
        step_definition_id: int,
        actor: Actor,
        decision: StepDecision,
    ) -> AuthorizationVerdict:
        if enrollment.final_approval:
            return _deny(DenialReason.ALREADY_FINALIZED)

        chain = live_records(records)
        record = next((r for r in chain if r.step_definition_id == step_definition_id), None)
        if record is None:
            return _deny(DenialReason.NOT_FOUND)
        if record.is_decided:
            return _deny(DenialReason.ALREADY_DECIDED, record)

        if decision is StepDecision.APPROVE:
            order = record.step_definition.order
            for other in chain:
                if other is record:
                    continue
                if other.step_definition.order < order and not other.approved:
                    return _deny(DenialReason.PREDECESSOR_INCOMPLETE, record)

        if actor.id == enrollment.user_id:
            return _deny(DenialReason.SELF_APPROVAL, record)

        definition = record.step_definition
        if definition.kind == StepKind.HEAD_APPROVAL.value:
            subject_department = enrollment.user.department_id if enrollment.user else None
            if actor.department_id is None or actor.department_id != subject_department:
                return _deny(DenialReason.WRONG_DEPARTMENT, record)
            if not actor.is_department_head:
                return _deny(DenialReason.NOT_HEAD, record)
        elif definition.role_id not in actor.role_ids:
            return _deny(DenialReason.MISSING_ROLE, record)

        return AuthorizationVerdict(True, None, record)

    def next_pending_record(self, records: Iterable[ApprovalStepRecord]) -> Optional[ApprovalStepRecord]:
        """The first live step in chain order that is not approved yet."""
        for record in live_records(records):
            if not record.approved:
                return record
        return None

    def awaits_head_of(self, enrollment: Enrollment, records: Iterable[ApprovalStepRecord], actor: Actor) -> bool:
        """Whether the enrollment's next step is a head approval this actor can give."""
        if enrollment.final_approval or actor.id == enrollment.user_id:
            return False
        if not actor.is_department_head or actor.department_id is None:
            return False
        if enrollment.user is None or enrollment.user.department_id != actor.department_id:
            return False
        pending = self.next_pending_record(records)
        return (
            pending is not None
            and not pending.rejected
            and pending.step_definition.kind == StepKind.HEAD_APPROVAL.value
        )

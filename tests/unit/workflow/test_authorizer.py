"""Tests for approval step eligibility checks."""

import pytest

from ums.core.approval import Actor, ApprovalAuthorizer, DenialReason, StepDecision, StepKind
from ums.core.approval.authorizer import live_records
from ums.core.approval.errors import (
    AlreadyDecidedError,
    NotFoundError,
    PredecessorIncompleteError,
    SelfApprovalError,
)
from ums.db.models import ApprovalStepDefinition, ApprovalStepRecord, Enrollment, User

PARTICIPANT_ID = 100
DEPARTMENT_ID = 5
REVIEWER_ROLE_ID = 42


def make_definition(definition_id, order, kind=StepKind.ROLE_APPROVAL, role_id=REVIEWER_ROLE_ID,
                    is_active=True, is_deleted=False):
    return ApprovalStepDefinition(
        id=definition_id,
        category_id=1,
        order=order,
        kind=kind.value,
        role_id=role_id if kind is StepKind.ROLE_APPROVAL else None,
        is_active=is_active,
        is_deleted=is_deleted,
    )


def make_record(definition, approved=False, rejected=False, is_deleted=False):
    return ApprovalStepRecord(
        id=definition.id * 10,
        enrollment_id=1,
        step_definition_id=definition.id,
        step_definition=definition,
        approved=approved,
        rejected=rejected,
        is_deleted=is_deleted,
    )


def make_enrollment(final_approval=False):
    participant = User(id=PARTICIPANT_ID, email="p@example.com", full_name="Participant",
                       organization_id=1, department_id=DEPARTMENT_ID)
    return Enrollment(id=1, course_id=1, user_id=PARTICIPANT_ID, status="pending",
                      final_approval=final_approval, user=participant)


def reviewer(**overrides):
    values = dict(id=200, display_name="Reviewer", role_ids=frozenset({REVIEWER_ROLE_ID}))
    values.update(overrides)
    return Actor(**values)


def head(**overrides):
    values = dict(id=300, display_name="Head", department_id=DEPARTMENT_ID, department_role="Head")
    values.update(overrides)
    return Actor(**values)


@pytest.fixture
def authorizer():
    return ApprovalAuthorizer()


@pytest.fixture
def chain():
    """Role step followed by a head step."""
    role_step = make_definition(1, order=1)
    head_step = make_definition(2, order=2, kind=StepKind.HEAD_APPROVAL)
    return role_step, head_step


class TestLiveRecords:

    def test_sorted_by_definition_order(self):
        second = make_record(make_definition(1, order=2))
        first = make_record(make_definition(2, order=1))
        assert live_records([second, first]) == [first, second]

    def test_inactive_and_deleted_definitions_are_dropped(self):
        live = make_record(make_definition(1, order=1))
        inactive = make_record(make_definition(2, order=2, is_active=False))
        deleted = make_record(make_definition(3, order=3, is_deleted=True))
        assert live_records([live, inactive, deleted]) == [live]

    def test_deleted_records_are_dropped(self):
        record = make_record(make_definition(1, order=1), is_deleted=True)
        assert live_records([record]) == []


class TestAuthorize:

    def test_role_holder_may_approve_first_step(self, authorizer, chain):
        role_step, head_step = chain
        records = [make_record(role_step), make_record(head_step)]

        verdict = authorizer.authorize(make_enrollment(), records, 1, reviewer(), StepDecision.APPROVE)

        assert verdict.allowed
        assert verdict.record is records[0]

    def test_finalized_enrollment_is_checked_first(self, authorizer, chain):
        role_step, _ = chain
        verdict = authorizer.authorize(
            make_enrollment(final_approval=True), [make_record(role_step)], 999, reviewer(), StepDecision.APPROVE
        )
        assert verdict.reason is DenialReason.ALREADY_FINALIZED

    def test_unknown_step(self, authorizer, chain):
        role_step, _ = chain
        verdict = authorizer.authorize(make_enrollment(), [make_record(role_step)], 999, reviewer(),
                                       StepDecision.APPROVE)
        assert verdict.reason is DenialReason.NOT_FOUND
        with pytest.raises(NotFoundError):
            verdict.raise_for_denial(999)

    def test_inactive_step_counts_as_not_found(self, authorizer):
        inactive = make_definition(1, order=1, is_active=False)
        verdict = authorizer.authorize(make_enrollment(), [make_record(inactive)], 1, reviewer(),
                                       StepDecision.APPROVE)
        assert verdict.reason is DenialReason.NOT_FOUND

    def test_decided_step(self, authorizer, chain):
        role_step, head_step = chain
        records = [make_record(role_step, approved=True), make_record(head_step)]
        verdict = authorizer.authorize(make_enrollment(), records, 1, reviewer(), StepDecision.APPROVE)
        assert verdict.reason is DenialReason.ALREADY_DECIDED
        with pytest.raises(AlreadyDecidedError):
            verdict.raise_for_denial(1)

    def test_approval_waits_for_lower_orders(self, authorizer, chain):
        role_step, head_step = chain
        records = [make_record(role_step), make_record(head_step)]
        verdict = authorizer.authorize(make_enrollment(), records, 2, head(), StepDecision.APPROVE)
        assert verdict.reason is DenialReason.PREDECESSOR_INCOMPLETE
        with pytest.raises(PredecessorIncompleteError):
            verdict.raise_for_denial(2)

    def test_rejection_skips_ordering(self, authorizer, chain):
        role_step, head_step = chain
        records = [make_record(role_step), make_record(head_step)]
        verdict = authorizer.authorize(make_enrollment(), records, 2, head(), StepDecision.REJECT)
        assert verdict.allowed

    def test_inactive_predecessor_does_not_block(self, authorizer):
        inactive = make_definition(1, order=1, is_active=False)
        head_step = make_definition(2, order=2, kind=StepKind.HEAD_APPROVAL)
        records = [make_record(inactive), make_record(head_step)]
        verdict = authorizer.authorize(make_enrollment(), records, 2, head(), StepDecision.APPROVE)
        assert verdict.allowed

    def test_participant_cannot_decide_own_enrollment(self, authorizer, chain):
        role_step, _ = chain
        actor = reviewer(id=PARTICIPANT_ID)
        verdict = authorizer.authorize(make_enrollment(), [make_record(role_step)], 1, actor,
                                       StepDecision.APPROVE)
        assert verdict.reason is DenialReason.SELF_APPROVAL
        with pytest.raises(SelfApprovalError):
            verdict.raise_for_denial(1)

    def test_head_of_another_department(self, authorizer, chain):
        role_step, head_step = chain
        records = [make_record(role_step, approved=True), make_record(head_step)]
        verdict = authorizer.authorize(make_enrollment(), records, 2, head(department_id=6),
                                       StepDecision.APPROVE)
        assert verdict.reason is DenialReason.WRONG_DEPARTMENT

    def test_member_of_department_who_is_not_head(self, authorizer, chain):
        role_step, head_step = chain
        records = [make_record(role_step, approved=True), make_record(head_step)]
        verdict = authorizer.authorize(make_enrollment(), records, 2, head(department_role="Member"),
                                       StepDecision.APPROVE)
        assert verdict.reason is DenialReason.NOT_HEAD

    def test_missing_role(self, authorizer, chain):
        role_step, _ = chain
        verdict = authorizer.authorize(make_enrollment(), [make_record(role_step)], 1,
                                       reviewer(role_ids=frozenset({7})), StepDecision.APPROVE)
        assert verdict.reason is DenialReason.MISSING_ROLE

    def test_head_role_does_not_satisfy_role_step(self, authorizer, chain):
        role_step, _ = chain
        verdict = authorizer.authorize(make_enrollment(), [make_record(role_step)], 1, head(),
                                       StepDecision.APPROVE)
        assert verdict.reason is DenialReason.MISSING_ROLE


class TestNextPending:

    def test_first_unapproved_live_step(self, authorizer, chain):
        role_step, head_step = chain
        records = [make_record(role_step, approved=True), make_record(head_step)]
        assert authorizer.next_pending_record(records).step_definition_id == 2

    def test_none_when_all_approved(self, authorizer, chain):
        role_step, head_step = chain
        records = [make_record(role_step, approved=True), make_record(head_step, approved=True)]
        assert authorizer.next_pending_record(records) is None

    def test_awaits_head(self, authorizer, chain):
        role_step, head_step = chain
        records = [make_record(role_step, approved=True), make_record(head_step)]
        assert authorizer.awaits_head_of(make_enrollment(), records, head())
        assert not authorizer.awaits_head_of(make_enrollment(), records, head(department_id=6))

    def test_not_awaiting_head_while_role_step_pending(self, authorizer, chain):
        role_step, head_step = chain
        records = [make_record(role_step), make_record(head_step)]
        assert not authorizer.awaits_head_of(make_enrollment(), records, head())

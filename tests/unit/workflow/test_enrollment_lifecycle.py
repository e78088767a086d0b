"""Tests for enrolling, withdrawing and re-enrolling."""

import pytest

from ums.core.approval.errors import (
    CapacityExceededError,
    CourseNotOpenError,
    DuplicateEnrollmentError,
    NotEnrollmentOwnerError,
    NotFoundError,
)
from ums.core.rbac.roles import SUPER_ADMIN_ROLE
from ums.db.models import ApprovalStepRecord, CourseStatus, Enrollment, EnrollmentHistory
from tests.factories import actor_for, create_course, create_course_tab, create_role, create_user


def all_records(db_session, enrollment_id):
    return db_session.query(ApprovalStepRecord).filter(
        ApprovalStepRecord.enrollment_id == enrollment_id
    ).all()


class TestEnroll:

    def test_new_enrollment_gets_pending_steps(self, service, world):
        result = service.enroll(world.course.id, actor_for(world.participant))

        assert result["status"] == "pending"
        assert result["final_approval"] is False
        assert result["restored"] is False
        assert [s["step_definition_id"] for s in result["steps"]] == [world.role_step.id, world.head_step.id]
        assert result["next_step_definition_id"] == world.role_step.id

    def test_missing_course(self, service, world):
        with pytest.raises(NotFoundError):
            service.enroll(9999, actor_for(world.participant))

    def test_unpublished_course(self, db_session, service, world):
        draft = create_course(db_session, tab=world.tab, org=world.org, status=CourseStatus.DRAFT.value)
        db_session.commit()

        with pytest.raises(CourseNotOpenError):
            service.enroll(draft.id, actor_for(world.participant))

    def test_duplicate_enrollment(self, service, world):
        actor = actor_for(world.participant)
        service.enroll(world.course.id, actor)

        with pytest.raises(DuplicateEnrollmentError):
            service.enroll(world.course.id, actor)

    def test_course_without_steps_is_approved_at_once(self, db_session, service, dispatcher, world):
        open_tab = create_course_tab(db_session, org=world.org)
        course = create_course(db_session, tab=open_tab, org=world.org)
        db_session.commit()

        result = service.enroll(course.id, actor_for(world.participant))

        assert result["status"] == "approved"
        assert result["final_approval"] is True
        assert result["steps"] == []
        assert result["notification_sent"] is True
        dispatcher.send_approval_email.assert_called_once()

    def test_capacity_counts_approved_enrollments(self, db_session, service, world):
        open_tab = create_course_tab(db_session, org=world.org)
        course = create_course(db_session, tab=open_tab, org=world.org, available_seats=1)
        db_session.commit()
        service.enroll(course.id, actor_for(world.participant))

        with pytest.raises(CapacityExceededError):
            service.enroll(course.id, actor_for(world.colleague))

    def test_pending_enrollments_do_not_hold_seats(self, db_session, service, world):
        course = create_course(db_session, tab=world.tab, org=world.org, available_seats=1)
        db_session.commit()

        service.enroll(course.id, actor_for(world.participant))
        result = service.enroll(course.id, actor_for(world.colleague))

        assert result["status"] == "pending"


class TestWithdraw:

    def test_withdraw_soft_deletes_enrollment_and_steps(self, db_session, service, world):
        enrolled = service.enroll(world.course.id, actor_for(world.participant))

        result = service.withdraw(enrolled["id"], actor_for(world.participant))

        assert result["is_deleted"] is True
        assert result["steps"] == []
        records = all_records(db_session, enrolled["id"])
        assert len(records) == 2
        assert all(r.is_deleted for r in records)

    def test_only_participant_or_super_admin(self, db_session, service, world):
        enrolled = service.enroll(world.course.id, actor_for(world.participant))

        with pytest.raises(NotEnrollmentOwnerError):
            service.withdraw(enrolled["id"], actor_for(world.reviewer))

        admin_role = create_role(db_session, org=world.org, name=SUPER_ADMIN_ROLE, permissions=["*:*"])
        admin = create_user(db_session, org=world.org, roles=[admin_role])
        db_session.commit()
        assert service.withdraw(enrolled["id"], actor_for(admin))["is_deleted"] is True

    def test_withdrawn_enrollment_is_not_found(self, service, world):
        actor = actor_for(world.participant)
        enrolled = service.enroll(world.course.id, actor)
        service.withdraw(enrolled["id"], actor)

        with pytest.raises(NotFoundError):
            service.withdraw(enrolled["id"], actor)


class TestReEnroll:

    def test_restores_the_same_row_with_fresh_steps(self, db_session, service, world):
        actor = actor_for(world.participant)
        first = service.enroll(world.course.id, actor)
        service.approve_step(first["id"], world.role_step.id, actor_for(world.reviewer))
        service.withdraw(first["id"], actor)

        second = service.enroll(world.course.id, actor)

        assert second["id"] == first["id"]
        assert second["restored"] is True
        assert second["status"] == "pending"
        assert second["is_deleted"] is False
        assert all(not s["approved"] for s in second["steps"])
        assert len(second["steps"]) == 2
        assert db_session.query(Enrollment).count() == 1
        assert len(all_records(db_session, first["id"])) == 4

    def test_restore_is_recorded_in_history(self, db_session, service, world):
        actor = actor_for(world.participant)
        first = service.enroll(world.course.id, actor)
        service.reject_step(first["id"], world.role_step.id, actor_for(world.reviewer))
        service.withdraw(first["id"], actor)

        service.enroll(world.course.id, actor)

        transitions = [
            (h.from_status, h.transition, h.to_status)
            for h in db_session.query(EnrollmentHistory).order_by(EnrollmentHistory.id)
        ]
        assert transitions == [
            ("pending", "reject", "rejected"),
            ("rejected", "restore", "pending"),
        ]

    def test_restored_enrollment_can_be_notified_again(self, db_session, service, dispatcher, world):
        open_tab = create_course_tab(db_session, org=world.org)
        course = create_course(db_session, tab=open_tab, org=world.org)
        db_session.commit()
        actor = actor_for(world.participant)

        first = service.enroll(course.id, actor)
        service.withdraw(first["id"], actor)
        second = service.enroll(course.id, actor)

        assert second["status"] == "approved"
        assert second["notification_sent"] is True
        assert dispatcher.send_approval_email.call_count == 2

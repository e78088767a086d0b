"""Tests for composable query filters."""

from sqlalchemy import true

from ums.core.filters import FilterSpec
from ums.db.models import Enrollment, User
from tests.factories import create_course, create_enrollment, create_user


def is_true(spec):
    return spec.clause().compare(true())


class TestFilterSpec:

    def test_empty_spec_is_true(self):
        spec = FilterSpec()
        assert len(spec) == 0
        assert is_true(spec)

    def test_when_skips_missing_values(self):
        spec = (
            FilterSpec()
            .when(None, lambda v: Enrollment.status == v)
            .when("   ", lambda v: Enrollment.status == v)
        )
        assert len(spec) == 0

    def test_when_keeps_false(self):
        spec = FilterSpec().when(False, lambda v: Enrollment.final_approval.is_(v))
        assert len(spec) == 1

    def test_when_strips_strings(self):
        seen = []
        FilterSpec().when("  approved ", lambda v: seen.append(v) or Enrollment.status == v)
        assert seen == ["approved"]

    def test_combining_specs(self):
        left = FilterSpec().where(Enrollment.course_id == 1)
        right = FilterSpec().where(Enrollment.user_id == 2)
        combined = left & right
        assert len(combined) == 2
        assert len(left) == 1

    def test_apply_to_query(self, db_session):
        course = create_course(db_session)
        alice = create_user(db_session, full_name="Alice Example")
        bob = create_user(db_session, full_name="Bob Example")
        create_enrollment(db_session, course=course, user=alice)
        create_enrollment(db_session, course=course, user=bob, status="approved")

        spec = (
            FilterSpec()
            .where(Enrollment.course_id == course.id)
            .when("approved", lambda v: Enrollment.status == v)
        )
        query = spec.apply(db_session.query(Enrollment).join(User, Enrollment.user_id == User.id))

        assert [e.user_id for e in query.all()] == [bob.id]

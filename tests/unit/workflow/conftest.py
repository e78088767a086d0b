"""Fixtures for workflow tests: one organization with a two-step chain."""

from types import SimpleNamespace

import pytest

from ums.core.approval import ApprovalWorkflowService, StepKind
from tests.factories import (
    create_course,
    create_course_tab,
    create_department,
    create_organization,
    create_role,
    create_step_definition,
    create_user,
)


@pytest.fixture
def world(db_session):
    """
    Course whose tab requires a reviewer, then the department head.

    Committed up front: the service rolls back on denial and must not take
    the fixture data with it.
    """
    org = create_organization(db_session, name="Main", is_main=True)
    department = create_department(db_session, org=org, name="Engineering")
    reviewer_role = create_role(db_session, org=org, name="Reviewer")

    participant = create_user(db_session, department=department, full_name="Pat Participant")
    colleague = create_user(db_session, department=department, full_name="Casey Colleague")
    reviewer = create_user(db_session, org=org, roles=[reviewer_role], full_name="Robin Reviewer")
    head = create_user(db_session, department=department, head=True, full_name="Harper Head")

    tab = create_course_tab(db_session, org=org, excuse_time_hours=24)
    course = create_course(db_session, tab=tab, org=org, available_seats=5)
    role_step = create_step_definition(db_session, tab=tab, order=1, role=reviewer_role)
    head_step = create_step_definition(db_session, tab=tab, order=2, kind=StepKind.HEAD_APPROVAL)
    db_session.commit()

    return SimpleNamespace(
        org=org,
        department=department,
        reviewer_role=reviewer_role,
        participant=participant,
        colleague=colleague,
        reviewer=reviewer,
        head=head,
        tab=tab,
        course=course,
        role_step=role_step,
        head_step=head_step,
    )


@pytest.fixture
def service(db_session, dispatcher, settings):
    return ApprovalWorkflowService(db_session, dispatcher, settings=settings)

"""Tests for approval chain administration."""

import pytest

from ums.core.approval import StepDefinitionService, StepKind
from ums.core.approval.errors import InvalidStepDefinitionError, NotFoundError, StepOrderConflictError


@pytest.fixture
def definitions(db_session):
    return StepDefinitionService(db_session)


class TestCreate:

    def test_role_step(self, definitions, world):
        step = definitions.create(world.tab.id, 3, StepKind.ROLE_APPROVAL, role_id=world.reviewer_role.id)

        assert step.id is not None
        assert step.kind == "role_approval"
        assert step.is_live

    def test_head_step_without_role(self, definitions, world):
        step = definitions.create(world.tab.id, 3, StepKind.HEAD_APPROVAL)
        assert step.role_id is None

    def test_head_step_with_role_is_invalid(self, definitions, world):
        with pytest.raises(InvalidStepDefinitionError):
            definitions.create(world.tab.id, 3, StepKind.HEAD_APPROVAL, role_id=world.reviewer_role.id)

    def test_role_step_needs_role(self, definitions, world):
        with pytest.raises(InvalidStepDefinitionError):
            definitions.create(world.tab.id, 3, StepKind.ROLE_APPROVAL)

    def test_unknown_role(self, definitions, world):
        with pytest.raises(NotFoundError):
            definitions.create(world.tab.id, 3, StepKind.ROLE_APPROVAL, role_id=9999)

    def test_order_must_be_positive(self, definitions, world):
        with pytest.raises(InvalidStepDefinitionError):
            definitions.create(world.tab.id, 0, StepKind.HEAD_APPROVAL)

    def test_order_conflict(self, definitions, world):
        with pytest.raises(StepOrderConflictError) as exc_info:
            definitions.create(world.tab.id, 1, StepKind.HEAD_APPROVAL)
        assert exc_info.value.status_code == 409

    def test_inactive_step_may_share_an_order(self, definitions, world):
        step = definitions.create(world.tab.id, 1, StepKind.HEAD_APPROVAL, is_active=False)
        assert not step.is_live

    def test_unknown_course_tab(self, definitions, world):
        with pytest.raises(NotFoundError):
            definitions.create(9999, 1, StepKind.HEAD_APPROVAL)


class TestUpdate:

    def test_switch_to_head_clears_role(self, definitions, world):
        step = definitions.update(world.role_step.id, kind=StepKind.HEAD_APPROVAL)

        assert step.kind == "head_approval"
        assert step.role_id is None

    def test_switch_to_role_needs_role(self, definitions, world):
        with pytest.raises(InvalidStepDefinitionError):
            definitions.update(world.head_step.id, kind=StepKind.ROLE_APPROVAL)

    def test_move_to_taken_order(self, definitions, world):
        with pytest.raises(StepOrderConflictError):
            definitions.update(world.head_step.id, order=1)

    def test_move_to_free_order(self, definitions, world):
        assert definitions.update(world.head_step.id, order=5).order == 5


class TestActivation:

    def test_listing_hides_inactive_by_default(self, definitions, world):
        definitions.set_active(world.head_step.id, False)

        assert [d.id for d in definitions.list_for_category(world.tab.id)] == [world.role_step.id]
        assert len(definitions.list_for_category(world.tab.id, include_inactive=True)) == 2

    def test_reactivating_into_taken_order(self, definitions, world):
        definitions.set_active(world.role_step.id, False)
        definitions.create(world.tab.id, 1, StepKind.HEAD_APPROVAL)

        with pytest.raises(StepOrderConflictError):
            definitions.set_active(world.role_step.id, True)

    def test_deleted_step_is_gone(self, definitions, world):
        definitions.delete(world.head_step.id)

        with pytest.raises(NotFoundError):
            definitions.get(world.head_step.id)
        assert len(definitions.list_for_category(world.tab.id, include_inactive=True)) == 1

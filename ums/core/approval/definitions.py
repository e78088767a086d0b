"""Administration of approval chains per course tab.

Editing a chain never touches enrollment step records directly; running
enrollments pick up the change on their next sync.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import and_
from sqlalchemy.orm import Session

from ums.db.models import ApprovalStepDefinition, CourseTab, Role
from .actor import Actor
from .errors import InvalidStepDefinitionError, NotFoundError, StepOrderConflictError
from .states import StepKind

logger = logging.getLogger(__name__)


class StepDefinitionService:
    """CRUD for ``ApprovalStepDefinition`` rows."""

    def __init__(self, db: Session):
        self.db = db

    def list_for_category(self, category_id: int, *, include_inactive: bool = False) -> List[ApprovalStepDefinition]:
        query = self.db.query(ApprovalStepDefinition).filter(
            and_(
                ApprovalStepDefinition.category_id == category_id,
                ApprovalStepDefinition.is_deleted.is_(False),
            )
        )
        if not include_inactive:
            query = query.filter(ApprovalStepDefinition.is_active.is_(True))
        return query.order_by(ApprovalStepDefinition.order.asc()).all()

    def get(self, definition_id: int) -> ApprovalStepDefinition:
        definition = self.db.query(ApprovalStepDefinition).filter(
            and_(
                ApprovalStepDefinition.id == definition_id,
                ApprovalStepDefinition.is_deleted.is_(False),
            )
        ).first()
        if not definition:
            raise NotFoundError("Approval step", definition_id)
        return definition

    def create(
        self,
        category_id: int,
        order: int,
        kind: StepKind,
        *,
        role_id: Optional[int] = None,
        is_active: bool = True,
        actor: Optional[Actor] = None,
    ) -> ApprovalStepDefinition:
        """
        Add a step to a course tab's chain.

        Raises:
            NotFoundError: Course tab or role does not exist
            InvalidStepDefinitionError: Kind and role do not agree
            StepOrderConflictError: Another live step already uses this order
        """
        tab = self.db.query(CourseTab).filter(
            and_(CourseTab.id == category_id, CourseTab.is_deleted.is_(False))
        ).first()
        if not tab:
            raise NotFoundError("Course tab", category_id)

        self._validate(kind, role_id, order)
        if is_active:
            self._ensure_order_free(category_id, order)

        definition = ApprovalStepDefinition(
            category_id=category_id,
            order=order,
            kind=kind.value,
            role_id=role_id,
            is_active=is_active,
            is_deleted=False,
            created_by=actor.id if actor else None,
        )
        self.db.add(definition)
        self.db.flush()

        logger.info("Added %s step #%d to course tab %s", kind.value, order, category_id)
        return definition

    def update(
        self,
        definition_id: int,
        *,
        order: Optional[int] = None,
        kind: Optional[StepKind] = None,
        role_id: Optional[int] = None,
        actor: Optional[Actor] = None,
    ) -> ApprovalStepDefinition:
        """Change order, kind or role. Switching to a head step clears the role."""
        definition = self.get(definition_id)

        new_kind = kind or StepKind(definition.kind)
        new_role_id = role_id if role_id is not None else definition.role_id
        if kind is StepKind.HEAD_APPROVAL and role_id is None:
            new_role_id = None
        new_order = order if order is not None else definition.order

        self._validate(new_kind, new_role_id, new_order)
        if definition.is_active and new_order != definition.order:
            self._ensure_order_free(definition.category_id, new_order, exclude_id=definition.id)

        definition.order = new_order
        definition.kind = new_kind.value
        definition.role_id = new_role_id
        definition.updated_at = datetime.utcnow()
        definition.updated_by = actor.id if actor else None
        self.db.flush()
        return definition

    def set_active(self, definition_id: int, is_active: bool, *, actor: Optional[Actor] = None) -> ApprovalStepDefinition:
        definition = self.get(definition_id)
        if is_active and not definition.is_active:
            self._ensure_order_free(definition.category_id, definition.order, exclude_id=definition.id)
        definition.is_active = is_active
        definition.updated_at = datetime.utcnow()
        definition.updated_by = actor.id if actor else None
        self.db.flush()

        logger.info("Approval step %s %s", definition.id, "activated" if is_active else "deactivated")
        return definition

    def delete(self, definition_id: int, *, actor: Optional[Actor] = None) -> ApprovalStepDefinition:
        definition = self.get(definition_id)
        definition.soft_delete()
        definition.updated_by = actor.id if actor else None
        self.db.flush()
        return definition

    def _validate(self, kind: StepKind, role_id: Optional[int], order: int) -> None:
        if order < 1:
            raise InvalidStepDefinitionError("Step order must be a positive integer")
        if kind is StepKind.HEAD_APPROVAL and role_id is not None:
            raise InvalidStepDefinitionError("Head approval steps cannot have a role")
        if kind is StepKind.ROLE_APPROVAL:
            if role_id is None:
                raise InvalidStepDefinitionError("Role approval steps require a role")
            if not self.db.query(Role.id).filter(Role.id == role_id).first():
                raise NotFoundError("Role", role_id)

    def _ensure_order_free(self, category_id: int, order: int, exclude_id: Optional[int] = None) -> None:
        query = self.db.query(ApprovalStepDefinition.id).filter(
            and_(
                ApprovalStepDefinition.category_id == category_id,
                ApprovalStepDefinition.order == order,
                ApprovalStepDefinition.is_active.is_(True),
                ApprovalStepDefinition.is_deleted.is_(False),
            )
        )
        if exclude_id is not None:
            query = query.filter(ApprovalStepDefinition.id != exclude_id)
        if query.first():
            raise StepOrderConflictError(category_id, order)

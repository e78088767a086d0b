"""Enrollment state machine.

Wraps one enrollment's status and applies transitions from the table in
``states``: the move must exist for the current status and the actor must
hold the rule's permission.
"""

import logging
from typing import Iterable, Optional

from ums.core.rbac.checker import PermissionChecker
from .errors import PermissionDeniedError, WorkflowError
from .states import (
    EnrollmentStatus,
    EnrollmentTransition,
    FINALIZED_STATES,
    TransitionRule,
    get_transition_rule,
)

logger = logging.getLogger(__name__)


class TransitionError(WorkflowError):
    """The requested move is not allowed from the enrollment's current status."""

    code = "invalid_transition"
    status_code = 409

    def __init__(self, message: str, from_state: EnrollmentStatus, transition: EnrollmentTransition):
        super().__init__(message, from_state=from_state.value, transition=transition.value)
        self.from_state = from_state
        self.transition = transition


class EnrollmentStateMachine:
    """Status holder for a single enrollment.

    ``actor_permissions`` are checked against rules that name a permission;
    an empty set only allows the unprotected moves.
    """

    def __init__(
        self,
        enrollment_id: int,
        current_state: EnrollmentStatus,
        *,
        actor_permissions: Optional[Iterable[str]] = None,
    ):
        self.enrollment_id = enrollment_id
        self._state = current_state
        self._checker = PermissionChecker(actor_permissions or [])

    @property
    def state(self) -> EnrollmentStatus:
        return self._state

    @property
    def is_finalized(self) -> bool:
        return self._state in FINALIZED_STATES

    def _rule_for(self, transition: EnrollmentTransition) -> TransitionRule:
        rule = get_transition_rule(self._state, transition)
        if rule is None:
            raise TransitionError(
                f"Cannot perform {transition.value} from state {self._state.value}",
                self._state,
                transition,
            )
        return rule

    def _permitted(self, rule: TransitionRule) -> bool:
        return not rule.requires_permission or self._checker.has_permission(rule.requires_permission)

    def transition(self, transition: EnrollmentTransition, *, actor_id: Optional[int] = None) -> EnrollmentStatus:
        """
        Apply ``transition`` and return the new status.

        Raises:
            TransitionError: no such move from the current status
            PermissionDeniedError: the actor lacks the rule's permission
        """
        rule = self._rule_for(transition)
        if not self._permitted(rule):
            raise PermissionDeniedError(rule.requires_permission)

        from_state = self._state
        self._state = rule.to_state
        logger.info(
            "Enrollment %s: %s -> %s (%s) by %s",
            self.enrollment_id, from_state.value, self._state.value, transition.value, actor_id,
        )
        return self._state

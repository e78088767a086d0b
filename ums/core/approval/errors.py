"""Exception hierarchy for the enrollment workflow.

Every check that can deny a request raises one of these before anything is
written. Each class carries a stable ``code`` and the HTTP status the API
layer renders it with, so clients can tell "earlier approvers still
pending" apart from "you cannot approve your own request".

Usage:
    from ums.core.approval.errors import NotFoundError, SelfApprovalError

    raise NotFoundError("Enrollment", enrollment_id)
    raise SelfApprovalError()
"""

from typing import Any, Dict, Optional


class WorkflowError(Exception):
    """Base class for all enrollment workflow errors."""

    code = "workflow_error"
    status_code = 400
    default_message = "The enrollment workflow rejected this request"

    def __init__(self, message: Optional[str] = None, **context: Any) -> None:
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.code, "detail": self.context or None}


class NotFoundError(WorkflowError):
    """Enrollment, step or course does not exist (or is soft-deleted)."""

    code = "not_found"
    status_code = 404

    def __init__(self, resource: str, resource_id: Any = None) -> None:
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" {resource_id}"
        msg += " not found"
        super().__init__(msg, resource=resource, resource_id=resource_id)


class AlreadyFinalizedError(WorkflowError):
    code = "already_finalized"
    status_code = 409
    default_message = "This enrollment has already been finalized"


class AlreadyDecidedError(WorkflowError):
    code = "already_decided"
    status_code = 409
    default_message = "This approval step has already been approved or rejected"


class PredecessorIncompleteError(WorkflowError):
    code = "predecessor_incomplete"
    status_code = 409
    default_message = "Earlier approval steps are still pending"


class SelfApprovalError(WorkflowError):
    code = "self_approval"
    status_code = 403
    default_message = "You cannot decide on your own enrollment"


class WrongDepartmentError(WorkflowError):
    code = "wrong_department"
    status_code = 403
    default_message = "Only the head of the participant's department can decide this step"


class NotHeadError(WorkflowError):
    code = "not_head"
    status_code = 403
    default_message = "You are not the head of this department"


class MissingRoleError(WorkflowError):
    code = "missing_role"
    status_code = 403
    default_message = "You do not hold the role required for this step"


class PermissionDeniedError(WorkflowError):
    """Raised when the actor lacks an RBAC permission for a transition."""

    code = "permission_denied"
    status_code = 403

    def __init__(self, required_permission: str) -> None:
        super().__init__(
            f"Permission denied: requires {required_permission}",
            required_permission=required_permission,
        )
        self.required_permission = required_permission


class CapacityExceededError(WorkflowError):
    code = "capacity_exceeded"
    status_code = 409
    default_message = "This course has no available seats"


class DuplicateEnrollmentError(WorkflowError):
    code = "duplicate_enrollment"
    status_code = 409
    default_message = "You are already enrolled in this course"


class InvalidLegacyPathError(WorkflowError):
    code = "invalid_legacy_path"
    status_code = 409
    default_message = "This enrollment has approval steps; decide them step by step"


class ExcuseWindowClosedError(WorkflowError):
    code = "excuse_window_closed"
    status_code = 400
    default_message = "The excuse deadline for this course has passed"


class NotExcusableError(WorkflowError):
    code = "not_excusable"
    status_code = 400
    default_message = "Only approved enrollments can be excused"


class ExcuseNotAvailableError(WorkflowError):
    code = "excuse_not_available"
    status_code = 400
    default_message = "Excusing is not available for this course"


class CourseNotOpenError(WorkflowError):
    code = "course_not_open"
    status_code = 400
    default_message = "This course is not open for enrollment"


class NotEnrollmentOwnerError(WorkflowError):
    code = "not_enrollment_owner"
    status_code = 403
    default_message = "Only the enrolled participant can do this"


class InvalidStateError(WorkflowError):
    code = "invalid_state"
    status_code = 400
    default_message = "The enrollment is not in a state that allows this action"


class InvalidStepDefinitionError(WorkflowError):
    code = "invalid_step_definition"
    status_code = 422
    default_message = "Invalid approval step definition"


class StepOrderConflictError(WorkflowError):
    code = "step_order_conflict"
    status_code = 409

    def __init__(self, category_id: int, order: int) -> None:
        super().__init__(
            f"Course tab {category_id} already has an active approval step with order {order}",
            category_id=category_id,
            order=order,
        )


class ConcurrentModificationError(WorkflowError):
    code = "concurrent_modification"
    status_code = 409
    default_message = "The enrollment was modified concurrently; please retry"

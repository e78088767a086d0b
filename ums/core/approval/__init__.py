"""Course enrollment approval workflow.

Implements the enrollment state machine, per-course-tab approval chains,
step synchronisation and the workflow service built on top of them.
"""

from .states import EnrollmentStatus, EnrollmentTransition, StepDecision, StepKind
from .machine import EnrollmentStateMachine, TransitionError
from .actor import Actor
from .authorizer import ApprovalAuthorizer, AuthorizationVerdict, DenialReason
from .sync import StepSyncEngine
from .lifecycle import EnrollmentLifecycle
from .definitions import StepDefinitionService
from .service import ApprovalWorkflowService

__all__ = [
    "EnrollmentStatus",
    "EnrollmentTransition",
    "StepDecision",
    "StepKind",
    "EnrollmentStateMachine",
    "TransitionError",
    "Actor",
    "ApprovalAuthorizer",
    "AuthorizationVerdict",
    "DenialReason",
    "StepSyncEngine",
    "EnrollmentLifecycle",
    "StepDefinitionService",
    "ApprovalWorkflowService",
]

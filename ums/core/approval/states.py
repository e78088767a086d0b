"""Enrollment workflow states and transitions.

State Machine Diagram:

    ┌──────────┐
    │ PENDING  │ ← Initial state (new or restored enrollment)
    └────┬─────┘
         │
         ├──────────────────────┐
         │                      │
    ┌────▼─────┐          ┌─────▼────┐
    │ APPROVED │          │ REJECTED │
    └────┬─────┘          └──────────┘
         │
    ┌────▼─────┐
    │ EXCUSED  │ (participant withdrew before the excuse deadline)
    └──────────┘

APPROVED is reached when the last live approval step is approved, when the
course category requires no approval at all, or through the legacy direct
path for enrollments without step records. Any single rejected step moves
the enrollment to REJECTED. RESTORE brings a withdrawn enrollment back to
PENDING from whatever state it was left in.
"""

from enum import Enum
from typing import Set, Dict, Optional, NamedTuple


class EnrollmentStatus(str, Enum):
    """States of a course enrollment."""

    PENDING = "pending"          # Waiting for approval steps
    APPROVED = "approved"        # Chain satisfied, holds a seat
    REJECTED = "rejected"        # A step was rejected
    EXCUSED = "excused"          # Approved, then excused by the participant


class EnrollmentTransition(str, Enum):
    """Actions that trigger state transitions."""

    # Step chain
    APPROVE = "approve"                  # PENDING → APPROVED (last step approved)
    REJECT = "reject"                    # PENDING → REJECTED (any step rejected)
    AUTO_APPROVE = "auto_approve"        # PENDING → APPROVED (no live steps)

    # Direct decision for enrollments without step records
    LEGACY_APPROVE = "legacy_approve"    # PENDING → APPROVED
    LEGACY_REJECT = "legacy_reject"      # PENDING → REJECTED

    # Participant actions
    EXCUSE = "excuse"                    # APPROVED → EXCUSED

    # Lifecycle
    RESTORE = "restore"                  # Any → PENDING (re-enrollment)


class StepKind(str, Enum):
    """Who may decide an approval step."""

    HEAD_APPROVAL = "head_approval"      # Head of the subject's department
    ROLE_APPROVAL = "role_approval"      # Any holder of the step's role


class StepDecision(str, Enum):
    """Verdict an approver gives on a single step."""

    APPROVE = "approve"
    REJECT = "reject"


class TransitionRule(NamedTuple):
    """Defines a valid state transition."""
    from_state: EnrollmentStatus
    to_state: EnrollmentStatus
    transition: EnrollmentTransition
    requires_permission: Optional[str] = None


# Define all valid transitions
TRANSITION_RULES: list[TransitionRule] = [
    # Step chain (eligibility is decided per step by the authorizer)
    TransitionRule(EnrollmentStatus.PENDING, EnrollmentStatus.APPROVED, EnrollmentTransition.APPROVE),
    TransitionRule(EnrollmentStatus.PENDING, EnrollmentStatus.REJECTED, EnrollmentTransition.REJECT),
    TransitionRule(EnrollmentStatus.PENDING, EnrollmentStatus.APPROVED, EnrollmentTransition.AUTO_APPROVE),

    # Legacy direct path
    TransitionRule(EnrollmentStatus.PENDING, EnrollmentStatus.APPROVED, EnrollmentTransition.LEGACY_APPROVE,
                   "enrollments:approve"),
    TransitionRule(EnrollmentStatus.PENDING, EnrollmentStatus.REJECTED, EnrollmentTransition.LEGACY_REJECT,
                   "enrollments:reject"),

    # Participant
    TransitionRule(EnrollmentStatus.APPROVED, EnrollmentStatus.EXCUSED, EnrollmentTransition.EXCUSE),

    # Re-enrollment
    TransitionRule(EnrollmentStatus.PENDING, EnrollmentStatus.PENDING, EnrollmentTransition.RESTORE),
    TransitionRule(EnrollmentStatus.APPROVED, EnrollmentStatus.PENDING, EnrollmentTransition.RESTORE),
    TransitionRule(EnrollmentStatus.REJECTED, EnrollmentStatus.PENDING, EnrollmentTransition.RESTORE),
    TransitionRule(EnrollmentStatus.EXCUSED, EnrollmentStatus.PENDING, EnrollmentTransition.RESTORE),
]

# (from_state, transition) -> rule
TRANSITION_TARGETS: Dict[tuple[EnrollmentStatus, EnrollmentTransition], TransitionRule] = {
    (rule.from_state, rule.transition): rule for rule in TRANSITION_RULES
}

# States carrying final_approval = True
FINALIZED_STATES: Set[EnrollmentStatus] = {
    EnrollmentStatus.APPROVED,
    EnrollmentStatus.REJECTED,
    EnrollmentStatus.EXCUSED,
}

# States that occupy a course seat
SEAT_HOLDING_STATES: Set[EnrollmentStatus] = {
    EnrollmentStatus.APPROVED,
}

# Department role that qualifies for head approval steps
HEAD_DEPARTMENT_ROLE = "Head"


def get_transition_rule(
    from_state: EnrollmentStatus, transition: EnrollmentTransition
) -> Optional[TransitionRule]:
    """Get the transition rule for a state/action combination."""
    return TRANSITION_TARGETS.get((from_state, transition))


def is_finalized(status: EnrollmentStatus) -> bool:
    """Whether an enrollment in this status carries final_approval."""
    return status in FINALIZED_STATES

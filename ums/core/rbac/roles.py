"""Default role definitions for UMS.

1. SuperAdmin - Full access across all organizations
2. Training Manager - Runs the enrollment workflow and its configuration
3. Employee - Enrolls in courses and manages their own enrollments
"""

from typing import Dict, List
from .permissions import Resource, Action, Permission

SUPER_ADMIN_ROLE = "SuperAdmin"
TRAINING_MANAGER_ROLE = "Training Manager"
EMPLOYEE_ROLE = "Employee"


def _build_permissions(*perms: tuple) -> List[str]:
    """Build permission strings from (Resource, Action) tuples."""
    return [str(Permission(r, a)) for r, a in perms]


SUPER_ADMIN_PERMISSIONS = [
    "*:*"  # Global wildcard - all permissions
]

TRAINING_MANAGER_PERMISSIONS = _build_permissions(
    (Resource.ENROLLMENTS, Action.LIST),
    (Resource.ENROLLMENTS, Action.READ),
    (Resource.ENROLLMENTS, Action.APPROVE),
    (Resource.ENROLLMENTS, Action.REJECT),
    (Resource.ENROLLMENTS, Action.SYNC),
    (Resource.ENROLLMENTS, Action.NOTIFY),
    (Resource.APPROVAL_STEPS, Action.MANAGE),
    (Resource.APPROVAL_STEPS, Action.LIST),
    (Resource.APPROVAL_STEPS, Action.READ),
    (Resource.APPROVAL_STEPS, Action.SYNC),
    (Resource.COURSES, Action.LIST),
    (Resource.COURSES, Action.READ),
)

EMPLOYEE_PERMISSIONS = _build_permissions(
    (Resource.ENROLLMENTS, Action.CREATE),
    (Resource.ENROLLMENTS, Action.READ),
    (Resource.ENROLLMENTS, Action.DELETE),
    (Resource.COURSES, Action.LIST),
    (Resource.COURSES, Action.READ),
)

DEFAULT_ROLES: Dict[str, List[str]] = {
    SUPER_ADMIN_ROLE: SUPER_ADMIN_PERMISSIONS,
    TRAINING_MANAGER_ROLE: TRAINING_MANAGER_PERMISSIONS,
    EMPLOYEE_ROLE: EMPLOYEE_PERMISSIONS,
}


def get_default_role_permissions(role_name: str) -> List[str]:
    """Get the default permission list for a role name (empty if unknown)."""
    return list(DEFAULT_ROLES.get(role_name, []))

"""Permission vocabulary for the enrollment service.

A permission is written ``resource:action`` (``enrollments:approve``,
``approval_steps:manage``). Only pairs listed in ``PERMISSION_MATRIX`` are
grantable; ``resource:*`` and ``*:*`` are wildcards understood by the
checker, not entries of the matrix.
"""

from enum import Enum
from typing import FrozenSet, NamedTuple


class Resource(str, Enum):
    ENROLLMENTS = "enrollments"         # enrollments and their decisions
    APPROVAL_STEPS = "approval_steps"   # per course tab approval chains
    COURSES = "courses"


class Action(str, Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    LIST = "list"

    APPROVE = "approve"     # direct decision on an enrollment without steps
    REJECT = "reject"
    SYNC = "sync"           # re-sync step records with the chain
    NOTIFY = "notify"       # resend enrollment emails
    MANAGE = "manage"       # create, update, activate and delete chain steps


class Permission(NamedTuple):
    resource: Resource
    action: Action

    def __str__(self) -> str:
        return f"{self.resource.value}:{self.action.value}"

    @classmethod
    def from_string(cls, value: str) -> "Permission":
        """Parse ``resource:action``.

        Raises:
            ValueError: malformed string or unknown resource/action
        """
        resource, sep, action = value.partition(":")
        if not sep or ":" in action:
            raise ValueError(f"Invalid permission format: {value}")
        return cls(Resource(resource), Action(action))


PERMISSION_MATRIX: dict[Resource, FrozenSet[Action]] = {
    Resource.ENROLLMENTS: frozenset({
        Action.CREATE, Action.READ, Action.LIST, Action.DELETE,
        Action.APPROVE, Action.REJECT, Action.SYNC, Action.NOTIFY,
    }),
    Resource.APPROVAL_STEPS: frozenset({
        Action.CREATE, Action.READ, Action.UPDATE, Action.DELETE,
        Action.LIST, Action.MANAGE, Action.SYNC,
    }),
    Resource.COURSES: frozenset({Action.READ, Action.LIST}),
}

# "resource:action" -> Permission, for every grantable pair
PERMISSION_DEFINITIONS: dict[str, Permission] = {
    str(perm): perm
    for perm in (
        Permission(resource, action)
        for resource, actions in PERMISSION_MATRIX.items()
        for action in actions
    )
}


def is_valid_permission(value: str) -> bool:
    return value in PERMISSION_DEFINITIONS


def get_permissions_for_resource(resource: Resource) -> list[str]:
    return sorted(str(Permission(resource, action)) for action in PERMISSION_MATRIX.get(resource, ()))

"""Identity claims of the user acting on the workflow."""

from dataclasses import dataclass, field
from typing import FrozenSet, Optional

from ums.core.approval.states import HEAD_DEPARTMENT_ROLE
from ums.core.rbac.roles import SUPER_ADMIN_ROLE


@dataclass(frozen=True)
class Actor:
    """Claims the workflow needs about the caller.

    Built from the authenticated user by the API layer; services never
    read the user table to decide eligibility.
    """

    id: int
    display_name: str
    department_id: Optional[int] = None
    department_role: Optional[str] = None
    role_ids: FrozenSet[int] = field(default_factory=frozenset)
    role_names: FrozenSet[str] = field(default_factory=frozenset)
    permissions: FrozenSet[str] = field(default_factory=frozenset)
    organization_id: Optional[int] = None
    email: Optional[str] = None
    all_organizations: bool = False

    @property
    def is_super_admin(self) -> bool:
        return SUPER_ADMIN_ROLE in self.role_names

    @property
    def is_department_head(self) -> bool:
        return self.department_role == HEAD_DEPARTMENT_ROLE

    @classmethod
    def from_user(cls, user) -> "Actor":
        roles = user.roles
        permissions = set()
        for role in roles:
            permissions.update(role.permissions or [])
        return cls(
            id=user.id,
            display_name=user.full_name,
            department_id=user.department_id,
            department_role=user.department_role,
            role_ids=frozenset(role.id for role in roles),
            role_names=frozenset(role.name for role in roles),
            permissions=frozenset(permissions),
            organization_id=user.organization_id,
            email=user.email,
            all_organizations=any(role.apply_to_all_organizations for role in roles),
        )

"""RBAC (Role-Based Access Control) module for UMS.

This module defines the permission model, default roles, and access control utilities.
"""

from .permissions import Permission, Resource, Action, PERMISSION_DEFINITIONS
from .checker import PermissionChecker, has_permission, require_permission
from .roles import SUPER_ADMIN_ROLE, DEFAULT_ROLES, get_default_role_permissions

__all__ = [
    "Permission",
    "Resource",
    "Action",
    "PERMISSION_DEFINITIONS",
    "PermissionChecker",
    "has_permission",
    "require_permission",
    "SUPER_ADMIN_ROLE",
    "DEFAULT_ROLES",
    "get_default_role_permissions",
]

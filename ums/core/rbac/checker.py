"""Permission checks for actors and FastAPI endpoints."""

from functools import wraps
from typing import Callable, Iterable, Union

from fastapi import HTTPException, status

from .permissions import Permission

PermissionLike = Union[str, Permission]

GLOBAL_WILDCARD = "*:*"


class PermissionChecker:
    """Answers permission questions for one set of granted permission strings.

    A grant matches exactly, by ``resource:*`` or by ``*:*``.
    """

    def __init__(self, actor_permissions: Iterable[str]):
        self.permissions = frozenset(actor_permissions)

    def _grants(self, permission: str) -> bool:
        resource, _, _ = permission.partition(":")
        return bool(
            self.permissions & {permission, f"{resource}:*", GLOBAL_WILDCARD}
        )

    def has_permission(self, permission: PermissionLike) -> bool:
        return self._grants(str(permission))

    def has_any_permission(self, permissions: Iterable[PermissionLike]) -> bool:
        return any(self.has_permission(p) for p in permissions)

    def has_all_permissions(self, permissions: Iterable[PermissionLike]) -> bool:
        return all(self.has_permission(p) for p in permissions)


def has_permission(actor, permission: PermissionLike) -> bool:
    """``False`` for a missing actor."""
    if actor is None:
        return False
    return PermissionChecker(actor.permissions or ()).has_permission(permission)


def require_permission(*permissions: PermissionLike, require_all: bool = False):
    """
    Guard an async endpoint on the permissions of its ``actor`` argument.

    The endpoint must take ``actor`` as a keyword (normally
    ``actor: Actor = Depends(get_current_actor)``). A missing actor is a 401,
    one lacking the permissions a 403. By default any one permission suffices.

    Usage:
        @router.post("/course/{course_id}/sync-steps")
        @require_permission("enrollments:sync")
        async def sync_course_steps(course_id: int, actor: Actor = Depends(get_current_actor)):
            ...
    """
    required = [str(p) for p in permissions]

    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            actor = kwargs.get("actor")
            if actor is None:
                raise HTTPException(
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    detail="Authentication required",
                )

            checker = PermissionChecker(actor.permissions or ())
            allowed = (
                checker.has_all_permissions(required)
                if require_all
                else checker.has_any_permission(required)
            )
            if not allowed:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Insufficient permissions. Required: {', '.join(required)}",
                )

            return await func(*args, **kwargs)

        return wrapper
    return decorator

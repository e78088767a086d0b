"""API routers for the UMS enrollment service."""

from . import health
from . import enrollments
from . import approval_steps

__all__ = [
    "health",
    "enrollments",
    "approval_steps",
]

"""Database models for the UMS enrollment service."""

from ums.db.models.org import Organization, Department
from ums.db.models.role import Role
from ums.db.models.user import User, UserRole
from ums.db.models.course import Course, CourseTab, CourseStatus
from ums.db.models.approval import ApprovalStepDefinition, ApprovalStepRecord
from ums.db.models.enrollment import Enrollment, EnrollmentHistory
from ums.db.models.notification import (
    EnrollmentEmailHistory,
    EmailEventType,
    EmailStatus,
)

__all__ = [
    "Organization",
    "Department",
    "Role",
    "User",
    "UserRole",
    "Course",
    "CourseTab",
    "CourseStatus",
    "ApprovalStepDefinition",
    "ApprovalStepRecord",
    "Enrollment",
    "EnrollmentHistory",
    "EnrollmentEmailHistory",
    "EmailEventType",
    "EmailStatus",
]

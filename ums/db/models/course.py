"""Course catalogue models.

Courses are grouped into course tabs (categories). Each tab carries the
approval chain its enrollments must pass, and optionally the excuse
window: the number of hours before course start after which an approved
participant can no longer excuse themselves.
"""

import enum
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey
from sqlalchemy.orm import relationship

from ums.db.base import Base
from ums.db.models.soft_delete import SoftDeleteMixin


class CourseStatus(str, enum.Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    REGISTRATION_CLOSED = "registration_closed"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELED = "canceled"
    ARCHIVED = "archived"


class CourseTab(SoftDeleteMixin, Base):
    __tablename__ = "course_tabs"

    id = Column(Integer, primary_key=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=True, index=True)
    name = Column(String(255), nullable=False)
    route_code = Column(String(100), nullable=True)
    excuse_time_hours = Column(Integer, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    courses = relationship("Course", back_populates="course_tab")
    approval_steps = relationship(
        "ApprovalStepDefinition",
        back_populates="category",
        order_by="ApprovalStepDefinition.order",
    )

    def __repr__(self) -> str:
        return f"<CourseTab {self.name}>"


class Course(SoftDeleteMixin, Base):
    __tablename__ = "courses"

    id = Column(Integer, primary_key=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    course_tab_id = Column(Integer, ForeignKey("course_tabs.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    code = Column(String(50), nullable=True)
    status = Column(String(30), nullable=False, default=CourseStatus.DRAFT.value, index=True)
    start_at = Column(DateTime, nullable=True)
    end_at = Column(DateTime, nullable=True)
    available_seats = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    organization = relationship("Organization")
    course_tab = relationship("CourseTab", back_populates="courses")
    enrollments = relationship("Enrollment", back_populates="course")

    @property
    def is_published(self) -> bool:
        return self.status == CourseStatus.PUBLISHED.value

    def __repr__(self) -> str:
        return f"<Course {self.name} [{self.status}]>"

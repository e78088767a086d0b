"""Course enrollment models.

An enrollment is unique per (course, user) pair, soft-deleted rows
included: re-enrolling after a withdrawal restores the existing row.
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from ums.db.base import Base
from ums.db.models.soft_delete import SoftDeleteMixin


class Enrollment(SoftDeleteMixin, Base):
    __tablename__ = "course_enrollments"
    __table_args__ = (
        UniqueConstraint("course_id", "user_id", name="uq_course_enrollments_course_user"),
    )

    id = Column(Integer, primary_key=True)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Workflow state
    status = Column(String(20), nullable=False, default="pending", index=True)
    final_approval = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    enrolled_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    # Approval email guard
    notification_sent = Column(Boolean, nullable=False, default=False)
    notification_sent_at = Column(DateTime, nullable=True)

    # Optimistic concurrency counter
    version = Column(Integer, nullable=False, default=1)

    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    course = relationship("Course", back_populates="enrollments")
    user = relationship("User", back_populates="enrollments", foreign_keys=[user_id])
    step_records = relationship(
        "ApprovalStepRecord",
        back_populates="enrollment",
        order_by="ApprovalStepRecord.id",
    )
    history = relationship(
        "EnrollmentHistory",
        back_populates="enrollment",
        order_by="EnrollmentHistory.id",
    )

    def __repr__(self) -> str:
        return f"<Enrollment course={self.course_id} user={self.user_id} [{self.status}]>"


class EnrollmentHistory(Base):
    """
    Records all status transitions for enrollments.

    Provides a complete audit trail of the approval workflow.
    """
    __tablename__ = "course_enrollment_history"

    id = Column(Integer, primary_key=True)
    enrollment_id = Column(
        Integer, ForeignKey("course_enrollments.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Transition details
    from_status = Column(String(20), nullable=False)
    to_status = Column(String(20), nullable=False)
    transition = Column(String(30), nullable=False)

    # Actor (None for system transitions such as auto approval)
    actor_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    comment = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    # Relationships
    enrollment = relationship("Enrollment", back_populates="history")
    actor = relationship("User")

    def __repr__(self) -> str:
        return f"<EnrollmentHistory {self.from_status} -> {self.to_status}>"

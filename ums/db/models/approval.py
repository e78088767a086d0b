"""Approval chain models.

``ApprovalStepDefinition`` is the per-category configuration: an ordered
list of steps, each satisfied either by the subject's department head or by
any holder of a given role. ``ApprovalStepRecord`` is the per-enrollment
instance of one definition and carries the decision.
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey, Text
from sqlalchemy.orm import relationship

from ums.db.base import Base
from ums.db.models.soft_delete import SoftDeleteMixin


class ApprovalStepDefinition(SoftDeleteMixin, Base):
    __tablename__ = "course_tab_approvals"

    id = Column(Integer, primary_key=True)
    category_id = Column(Integer, ForeignKey("course_tabs.id"), nullable=False, index=True)
    order = Column(Integer, nullable=False)
    kind = Column(String(30), nullable=False)  # head_approval | role_approval
    role_id = Column(Integer, ForeignKey("roles.id", ondelete="SET NULL"), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    category = relationship("CourseTab", back_populates="approval_steps")
    role = relationship("Role")

    @property
    def is_live(self) -> bool:
        return bool(self.is_active) and not self.is_deleted

    def __repr__(self) -> str:
        return f"<ApprovalStepDefinition #{self.order} {self.kind} tab={self.category_id}>"


class ApprovalStepRecord(SoftDeleteMixin, Base):
    __tablename__ = "course_enrollment_approvals"

    id = Column(Integer, primary_key=True)
    enrollment_id = Column(
        Integer, ForeignKey("course_enrollments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    step_definition_id = Column(
        Integer, ForeignKey("course_tab_approvals.id"), nullable=False, index=True
    )

    # Decision
    approved = Column(Boolean, nullable=False, default=False)
    rejected = Column(Boolean, nullable=False, default=False)
    approved_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    decided_at = Column(DateTime, nullable=True)
    comments = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    enrollment = relationship("Enrollment", back_populates="step_records")
    step_definition = relationship("ApprovalStepDefinition")
    approver = relationship("User", foreign_keys=[approved_by])

    @property
    def is_decided(self) -> bool:
        return bool(self.approved or self.rejected)

    def __repr__(self) -> str:
        state = "approved" if self.approved else "rejected" if self.rejected else "pending"
        return f"<ApprovalStepRecord enrollment={self.enrollment_id} step={self.step_definition_id} [{state}]>"

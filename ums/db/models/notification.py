"""Enrollment email delivery log."""

import enum
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship

from ums.db.base import Base


class EmailEventType(str, enum.Enum):
    ENROLLMENT_APPROVED = "enrollment_approved"
    ENROLLMENT_REJECTED = "enrollment_rejected"


class EmailStatus(str, enum.Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"


class EnrollmentEmailHistory(Base):
    """One row per email attempt for an enrollment."""
    __tablename__ = "enrollment_email_history"

    id = Column(Integer, primary_key=True)
    enrollment_id = Column(
        Integer, ForeignKey("course_enrollments.id", ondelete="CASCADE"), nullable=True, index=True
    )
    event_type = Column(String(50), nullable=False)
    recipient = Column(String(255), nullable=False)
    template_name = Column(String(100), nullable=True)
    subject = Column(String(500), nullable=False)
    body = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default=EmailStatus.PENDING.value)
    error_message = Column(Text, nullable=True)
    sent_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    sent_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    # Relationships
    enrollment = relationship("Enrollment")

    def __repr__(self) -> str:
        return f"<EnrollmentEmailHistory {self.event_type} -> {self.recipient} [{self.status}]>"

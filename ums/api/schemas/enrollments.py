"""Enrollment workflow schemas."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class StepRecordResponse(BaseModel):
    id: int
    step_definition_id: int
    order: Optional[int] = None
    kind: Optional[str] = None
    role_id: Optional[int] = None
    role_name: Optional[str] = None
    is_live: bool = True
    approved: bool
    rejected: bool
    approved_by: Optional[int] = None
    approver_name: Optional[str] = None
    decided_at: Optional[datetime] = None
    comments: Optional[str] = None


class EnrollmentResponse(BaseModel):
    id: int
    course_id: int
    user_id: int
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    status: str
    final_approval: bool
    is_active: bool
    is_deleted: bool = False
    enrolled_at: datetime
    notification_sent: bool
    notification_sent_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    next_step_definition_id: Optional[int] = None
    steps: List[StepRecordResponse] = []
    restored: Optional[bool] = None
    email_sent: Optional[bool] = None


class EnrollmentListResponse(BaseModel):
    items: List[EnrollmentResponse]
    total: int
    page: int
    per_page: int
    pages: int


class EnrollmentCheckResponse(BaseModel):
    enrolled: bool
    enrollment: Optional[EnrollmentResponse] = None


class EnrollRequest(BaseModel):
    course_id: int


class StepDecisionRequest(BaseModel):
    enrollment_id: int
    step_definition_id: int
    comments: Optional[str] = Field(None, max_length=2000)


class DecisionComment(BaseModel):
    comments: Optional[str] = Field(None, max_length=2000)


class SyncFailure(BaseModel):
    id: int
    error: str


class SyncResultResponse(BaseModel):
    synced: List[int] = []
    finalized: List[int] = []
    failed: List[SyncFailure] = []


class EmailHistoryResponse(BaseModel):
    id: int
    event_type: str
    recipient: str
    subject: str
    status: str
    error_message: Optional[str] = None
    sent_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class EnrollmentHistoryResponse(BaseModel):
    id: int
    from_status: str
    to_status: str
    transition: str
    actor_id: Optional[int] = None
    comment: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

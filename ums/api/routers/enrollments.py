"""Course enrollment workflow API endpoints."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from ums.api.deps import get_current_actor, get_workflow_service
from ums.api.schemas.common import PaginatedResponse
from ums.api.schemas.enrollments import (
    DecisionComment,
    EmailHistoryResponse,
    EnrollmentCheckResponse,
    EnrollmentHistoryResponse,
    EnrollmentListResponse,
    EnrollmentResponse,
    EnrollRequest,
    StepDecisionRequest,
    SyncResultResponse,
)
from ums.core.approval import Actor, ApprovalWorkflowService, EnrollmentStatus, StepDecision
from ums.core.rbac import require_permission

router = APIRouter(prefix="/enrollments", tags=["enrollments"])


def _page(items, total: int, page: int, per_page: int) -> EnrollmentListResponse:
    paged = PaginatedResponse.create(items, total, page, per_page)
    return EnrollmentListResponse(
        items=[EnrollmentResponse.model_validate(i) for i in paged.items],
        total=paged.total,
        page=paged.page,
        per_page=paged.per_page,
        pages=paged.pages,
    )


@router.get("/course/{course_id}", response_model=EnrollmentListResponse)
@require_permission("enrollments:list")
async def list_course_enrollments(
    course_id: int,
    actor: Actor = Depends(get_current_actor),
    service: ApprovalWorkflowService = Depends(get_workflow_service),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    status_filter: Optional[EnrollmentStatus] = Query(None, alias="status"),
    search: Optional[str] = None,
    final_approval: Optional[bool] = None,
):
    """List enrollments of a course. Pending enrollments are re-synced first."""
    items, total = service.list_course_enrollments(
        course_id,
        actor,
        status=status_filter.value if status_filter else None,
        search=search,
        final_approval=final_approval,
        page=page,
        per_page=per_page,
    )
    return _page(items, total, page, per_page)


@router.post("/course/{course_id}/sync-steps", response_model=SyncResultResponse)
@require_permission("enrollments:sync")
async def sync_course_steps(
    course_id: int,
    actor: Actor = Depends(get_current_actor),
    service: ApprovalWorkflowService = Depends(get_workflow_service),
):
    """Re-sync approval steps for every pending enrollment of a course."""
    return SyncResultResponse.model_validate(service.sync_course(course_id))


@router.get("/pending-head-approvals", response_model=EnrollmentListResponse)
async def list_pending_head_approvals(
    actor: Actor = Depends(get_current_actor),
    service: ApprovalWorkflowService = Depends(get_workflow_service),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
):
    """Enrollments in the caller's department waiting for the head's approval."""
    items, total = service.list_pending_head_approvals(actor, page=page, per_page=per_page)
    return _page(items, total, page, per_page)


@router.get("/check/{course_id}", response_model=EnrollmentCheckResponse)
async def check_enrollment(
    course_id: int,
    actor: Actor = Depends(get_current_actor),
    service: ApprovalWorkflowService = Depends(get_workflow_service),
):
    """Whether the caller is enrolled in a course, with the enrollment if so."""
    enrollment = service.get_enrollment_for_user(course_id, actor)
    return EnrollmentCheckResponse(
        enrolled=enrollment is not None,
        enrollment=EnrollmentResponse.model_validate(enrollment) if enrollment else None,
    )


@router.post("", response_model=EnrollmentResponse, status_code=status.HTTP_201_CREATED)
@require_permission("enrollments:create")
async def enroll(
    request: EnrollRequest,
    actor: Actor = Depends(get_current_actor),
    service: ApprovalWorkflowService = Depends(get_workflow_service),
):
    """Enroll the caller in a course (restores a previously withdrawn enrollment)."""
    return EnrollmentResponse.model_validate(service.enroll(request.course_id, actor))


@router.post("/approve-step", response_model=EnrollmentResponse)
async def approve_step(
    request: StepDecisionRequest,
    actor: Actor = Depends(get_current_actor),
    service: ApprovalWorkflowService = Depends(get_workflow_service),
):
    """Approve one approval step of an enrollment."""
    result = service.decide_step(
        request.enrollment_id,
        request.step_definition_id,
        StepDecision.APPROVE,
        actor,
        comment=request.comments,
    )
    return EnrollmentResponse.model_validate(result)


@router.post("/reject-step", response_model=EnrollmentResponse)
async def reject_step(
    request: StepDecisionRequest,
    actor: Actor = Depends(get_current_actor),
    service: ApprovalWorkflowService = Depends(get_workflow_service),
):
    """Reject one approval step. The enrollment is rejected immediately."""
    result = service.decide_step(
        request.enrollment_id,
        request.step_definition_id,
        StepDecision.REJECT,
        actor,
        comment=request.comments,
    )
    return EnrollmentResponse.model_validate(result)


@router.get("/{enrollment_id}", response_model=EnrollmentResponse)
@require_permission("enrollments:read")
async def get_enrollment(
    enrollment_id: int,
    actor: Actor = Depends(get_current_actor),
    service: ApprovalWorkflowService = Depends(get_workflow_service),
):
    """Get an enrollment with its approval steps."""
    return EnrollmentResponse.model_validate(service.get_enrollment_detail(enrollment_id, actor))


@router.get("/{enrollment_id}/history", response_model=List[EnrollmentHistoryResponse])
@require_permission("enrollments:read")
async def get_enrollment_history(
    enrollment_id: int,
    actor: Actor = Depends(get_current_actor),
    service: ApprovalWorkflowService = Depends(get_workflow_service),
):
    """Get the status transition history of an enrollment."""
    return [EnrollmentHistoryResponse.model_validate(h) for h in service.get_history(enrollment_id)]


@router.get("/{enrollment_id}/email-history", response_model=List[EmailHistoryResponse])
@require_permission("enrollments:read")
async def get_email_history(
    enrollment_id: int,
    actor: Actor = Depends(get_current_actor),
    service: ApprovalWorkflowService = Depends(get_workflow_service),
):
    """Get every email attempt made for an enrollment."""
    return [EmailHistoryResponse.model_validate(e) for e in service.get_email_history(enrollment_id)]


@router.delete("/{enrollment_id}", response_model=EnrollmentResponse)
@require_permission("enrollments:delete")
async def withdraw_enrollment(
    enrollment_id: int,
    actor: Actor = Depends(get_current_actor),
    service: ApprovalWorkflowService = Depends(get_workflow_service),
):
    """Withdraw an enrollment. It can be restored by enrolling again."""
    return EnrollmentResponse.model_validate(service.withdraw(enrollment_id, actor))


@router.patch("/{enrollment_id}/approve", response_model=EnrollmentResponse)
@require_permission("enrollments:approve")
async def approve_enrollment(
    enrollment_id: int,
    action: Optional[DecisionComment] = None,
    actor: Actor = Depends(get_current_actor),
    service: ApprovalWorkflowService = Depends(get_workflow_service),
):
    """Approve an enrollment directly. Only for enrollments without approval steps."""
    result = service.legacy_decide(
        enrollment_id, StepDecision.APPROVE, actor, comment=action.comments if action else None
    )
    return EnrollmentResponse.model_validate(result)


@router.patch("/{enrollment_id}/reject", response_model=EnrollmentResponse)
@require_permission("enrollments:reject")
async def reject_enrollment(
    enrollment_id: int,
    action: Optional[DecisionComment] = None,
    actor: Actor = Depends(get_current_actor),
    service: ApprovalWorkflowService = Depends(get_workflow_service),
):
    """Reject an enrollment directly. Only for enrollments without approval steps."""
    result = service.legacy_decide(
        enrollment_id, StepDecision.REJECT, actor, comment=action.comments if action else None
    )
    return EnrollmentResponse.model_validate(result)


@router.patch("/{enrollment_id}/excuse", response_model=EnrollmentResponse)
async def excuse_enrollment(
    enrollment_id: int,
    actor: Actor = Depends(get_current_actor),
    service: ApprovalWorkflowService = Depends(get_workflow_service),
):
    """Excuse yourself from an approved enrollment before the deadline."""
    return EnrollmentResponse.model_validate(service.excuse(enrollment_id, actor))


@router.post("/{enrollment_id}/resend-confirmation", response_model=EnrollmentResponse)
@require_permission("enrollments:notify")
async def resend_confirmation(
    enrollment_id: int,
    actor: Actor = Depends(get_current_actor),
    service: ApprovalWorkflowService = Depends(get_workflow_service),
):
    """Send the approval email again."""
    return EnrollmentResponse.model_validate(service.resend_notification(enrollment_id, actor))

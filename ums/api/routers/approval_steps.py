"""Approval chain configuration endpoints."""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from ums.api.deps import get_current_actor, get_db, get_step_definition_service, get_workflow_service
from ums.api.schemas.enrollments import SyncResultResponse
from ums.core.approval import Actor, ApprovalWorkflowService, StepDefinitionService, StepKind
from ums.core.rbac import require_permission

router = APIRouter(prefix="/approval-steps", tags=["approval-steps"])


# Schemas
class StepDefinitionResponse(BaseModel):
    id: int
    category_id: int
    order: int
    kind: str
    role_id: Optional[int]
    is_active: bool
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class StepDefinitionCreate(BaseModel):
    category_id: int
    order: int = Field(..., ge=1)
    kind: StepKind
    role_id: Optional[int] = None
    is_active: bool = True


class StepDefinitionUpdate(BaseModel):
    order: Optional[int] = Field(None, ge=1)
    kind: Optional[StepKind] = None
    role_id: Optional[int] = None


# Endpoints
@router.get("/categories/{category_id}", response_model=List[StepDefinitionResponse])
@require_permission("approval_steps:list")
async def list_category_steps(
    category_id: int,
    include_inactive: bool = Query(False),
    actor: Actor = Depends(get_current_actor),
    definitions: StepDefinitionService = Depends(get_step_definition_service),
):
    """List the approval chain of a course tab in order."""
    steps = definitions.list_for_category(category_id, include_inactive=include_inactive)
    return [StepDefinitionResponse.model_validate(s) for s in steps]


@router.post("/categories/{category_id}/sync", response_model=SyncResultResponse)
@require_permission("approval_steps:sync")
async def sync_category_steps(
    category_id: int,
    actor: Actor = Depends(get_current_actor),
    service: ApprovalWorkflowService = Depends(get_workflow_service),
):
    """Re-sync every pending enrollment of a course tab with its current chain."""
    return SyncResultResponse.model_validate(service.sync_category(category_id))


@router.get("/{definition_id}", response_model=StepDefinitionResponse)
@require_permission("approval_steps:read")
async def get_step(
    definition_id: int,
    actor: Actor = Depends(get_current_actor),
    definitions: StepDefinitionService = Depends(get_step_definition_service),
):
    return StepDefinitionResponse.model_validate(definitions.get(definition_id))


@router.post("", response_model=StepDefinitionResponse, status_code=status.HTTP_201_CREATED)
@require_permission("approval_steps:manage")
async def create_step(
    payload: StepDefinitionCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    definitions: StepDefinitionService = Depends(get_step_definition_service),
):
    """Add a step to a course tab's approval chain."""
    step = definitions.create(
        payload.category_id,
        payload.order,
        payload.kind,
        role_id=payload.role_id,
        is_active=payload.is_active,
        actor=actor,
    )
    db.commit()
    return StepDefinitionResponse.model_validate(step)


@router.put("/{definition_id}", response_model=StepDefinitionResponse)
@require_permission("approval_steps:manage")
async def update_step(
    definition_id: int,
    payload: StepDefinitionUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    definitions: StepDefinitionService = Depends(get_step_definition_service),
):
    step = definitions.update(
        definition_id,
        order=payload.order,
        kind=payload.kind,
        role_id=payload.role_id,
        actor=actor,
    )
    db.commit()
    return StepDefinitionResponse.model_validate(step)


@router.patch("/{definition_id}/activate", response_model=StepDefinitionResponse)
@require_permission("approval_steps:manage")
async def activate_step(
    definition_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    definitions: StepDefinitionService = Depends(get_step_definition_service),
):
    step = definitions.set_active(definition_id, True, actor=actor)
    db.commit()
    return StepDefinitionResponse.model_validate(step)


@router.patch("/{definition_id}/deactivate", response_model=StepDefinitionResponse)
@require_permission("approval_steps:manage")
async def deactivate_step(
    definition_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    definitions: StepDefinitionService = Depends(get_step_definition_service),
):
    """Deactivate a step. Pending enrollments drop it on their next sync."""
    step = definitions.set_active(definition_id, False, actor=actor)
    db.commit()
    return StepDefinitionResponse.model_validate(step)


@router.delete("/{definition_id}", status_code=status.HTTP_204_NO_CONTENT)
@require_permission("approval_steps:manage")
async def delete_step(
    definition_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    definitions: StepDefinitionService = Depends(get_step_definition_service),
):
    definitions.delete(definition_id, actor=actor)
    db.commit()

"""
Workflow Controllers (API Routes)
=================================

Administration endpoints for workflow templates and the execution log.

Controllers are thin - they delegate to repositories.
"""

import uuid
from dataclasses import replace
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ticket_automation.infrastructure.database import get_session
from ticket_automation.shared.infrastructure.logging import get_logger
from ticket_automation.workflows.application import (
    IWorkflowTemplateRepository,
    IWorkflowExecutionRepository,
    WorkflowTemplateCreateDTO,
    WorkflowTemplateUpdateDTO,
    WorkflowTemplateResponse,
    WorkflowExecutionResponse,
)
from ticket_automation.workflows.application.dto import ExecutionStatusStr
from ticket_automation.workflows.domain import WorkflowTemplate
from ticket_automation.workflows.infrastructure import (
    SQLAlchemyWorkflowTemplateRepository,
    SQLAlchemyWorkflowExecutionRepository,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/workflows", tags=["Workflows"])


# ========== Example payloads for Swagger ==========

TEMPLATE_CREATE_EXAMPLE = {
    "name": "Escalate critical printer tickets",
    "entity_type": "ticket",
    "trigger": "created",
    "conditions": [
        {"field": "priority", "operator": "equals", "value": "critical"},
        {"field": "asset.asset_type", "operator": "in", "value": ["printer", "scanner"]}
    ],
    "actions": [
        {"type": "add_comment", "comment": "Critical hardware issue, routed to on-call."},
        {"type": "send_notification", "recipients": ["3f0c1b9e-1c5e-4d8f-9a4e-2b7c6d5e4f3a"]}
    ],
    "priority": 10
}


# ========== Dependencies ==========

async def get_template_repository(
    session: AsyncSession = Depends(get_session)
) -> IWorkflowTemplateRepository:
    return SQLAlchemyWorkflowTemplateRepository(session)


async def get_execution_repository(
    session: AsyncSession = Depends(get_session)
) -> IWorkflowExecutionRepository:
    return SQLAlchemyWorkflowExecutionRepository(session)


async def _get_or_404(repo: IWorkflowTemplateRepository, template_id: str) -> WorkflowTemplate:
    template = await repo.get(template_id)
    if template is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Workflow template {template_id} not found"
        )
    return template


# ========== Route Handlers ==========

@router.get(
    "/templates",
    response_model=List[WorkflowTemplateResponse],
    summary="List workflow templates",
    description="All templates in execution order: priority descending, then oldest first."
)
async def list_templates(repo: IWorkflowTemplateRepository = Depends(get_template_repository)):
    templates = await repo.list_all()
    return [WorkflowTemplateResponse.from_entity(t) for t in templates]


@router.get("/templates/{template_id}", response_model=WorkflowTemplateResponse)
async def get_template(
    template_id: str,
    repo: IWorkflowTemplateRepository = Depends(get_template_repository)
):
    return WorkflowTemplateResponse.from_entity(await _get_or_404(repo, template_id))


@router.post(
    "/templates",
    response_model=WorkflowTemplateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create workflow template",
    description="""
    Create a rule that fires on an entity lifecycle event.

    **Triggers**: `created`, `status_changed`, `assigned`, `priority_changed`, `updated`

    **Operators**: `equals`, `not_equals`, `contains`, `not_contains`,
    `greater_than`, `less_than`, `in`, `not_in`

    **Actions**: `assign`, `change_status`, `change_priority`, `add_comment`,
    `send_notification`, `send_whatsapp`

    Conditions are ANDed. Field paths use dots for nested values and the
    `previous.` prefix to read the state before a change.
    """,
    responses={201: {"content": {"application/json": {"example": TEMPLATE_CREATE_EXAMPLE}}}}
)
async def create_template(
    request: WorkflowTemplateCreateDTO,
    repo: IWorkflowTemplateRepository = Depends(get_template_repository)
):
    template = await repo.create(WorkflowTemplate(
        id=str(uuid.uuid4()),
        name=request.name,
        description=request.description,
        entity_type=request.entity_type,
        trigger=request.trigger,
        conditions=request.conditions,
        actions=request.actions,
        is_active=request.is_active,
        priority=request.priority,
    ))
    logger.info("Workflow template created", extra={"workflow_id": template.id, "workflow": template.name})
    return WorkflowTemplateResponse.from_entity(template)


@router.put("/templates/{template_id}", response_model=WorkflowTemplateResponse)
async def update_template(
    template_id: str,
    request: WorkflowTemplateUpdateDTO,
    repo: IWorkflowTemplateRepository = Depends(get_template_repository)
):
    template = await _get_or_404(repo, template_id)
    changes = {
        name: getattr(request, name)
        for name in request.model_fields_set
        if getattr(request, name) is not None
    }
    template = await repo.update(replace(template, **changes))
    logger.info("Workflow template updated", extra={"workflow_id": template.id})
    return WorkflowTemplateResponse.from_entity(template)


@router.patch("/templates/{template_id}/toggle", response_model=WorkflowTemplateResponse)
async def toggle_template(
    template_id: str,
    repo: IWorkflowTemplateRepository = Depends(get_template_repository)
):
    template = await _get_or_404(repo, template_id)
    template = await repo.update(replace(template, is_active=not template.is_active))
    logger.info(
        "Workflow template toggled",
        extra={"workflow_id": template.id, "is_active": template.is_active}
    )
    return WorkflowTemplateResponse.from_entity(template)


@router.delete("/templates/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_template(
    template_id: str,
    repo: IWorkflowTemplateRepository = Depends(get_template_repository)
):
    if not await repo.delete(template_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Workflow template {template_id} not found"
        )
    logger.info("Workflow template deleted", extra={"workflow_id": template_id})


@router.get(
    "/executions",
    response_model=List[WorkflowExecutionResponse],
    summary="Workflow execution log",
    description="Most recent executions first."
)
async def list_executions(
    workflow_id: Optional[str] = Query(None, description="Filter by workflow template"),
    execution_status: Optional[ExecutionStatusStr] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=500),
    repo: IWorkflowExecutionRepository = Depends(get_execution_repository)
):
    executions = await repo.list(workflow_id=workflow_id, status=execution_status, limit=limit)
    return [WorkflowExecutionResponse.from_entity(e) for e in executions]

"""
Workflow Application DTOs
=========================

Pydantic models for the workflow administration API.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from ticket_automation.shared.domain import Condition
from ticket_automation.workflows.domain import (
    WorkflowAction,
    WorkflowTemplate,
    WorkflowExecution,
    dump_actions,
    dump_conditions,
)

EntityTypeStr = Literal["ticket", "asset"]
TriggerStr = Literal["created", "status_changed", "assigned", "priority_changed", "updated"]
ExecutionStatusStr = Literal["running", "completed", "failed"]


# ========== Request DTOs ==========

class WorkflowTemplateCreateDTO(BaseModel):
    """Request model for creating a workflow template."""
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    entity_type: EntityTypeStr
    trigger: TriggerStr
    conditions: List[Condition] = Field(default_factory=list)
    actions: List[WorkflowAction] = Field(..., min_length=1)
    is_active: bool = True
    priority: int = 0


class WorkflowTemplateUpdateDTO(BaseModel):
    """Partial update; omitted fields keep their value."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    entity_type: Optional[EntityTypeStr] = None
    trigger: Optional[TriggerStr] = None
    conditions: Optional[List[Condition]] = None
    actions: Optional[List[WorkflowAction]] = Field(None, min_length=1)
    is_active: Optional[bool] = None
    priority: Optional[int] = None


# ========== Response DTOs ==========

class WorkflowTemplateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: Optional[str] = None
    entity_type: str
    trigger: str
    conditions: List[Dict[str, Any]]
    actions: List[Dict[str, Any]]
    is_active: bool
    priority: int
    created_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, template: WorkflowTemplate) -> "WorkflowTemplateResponse":
        return cls(
            id=template.id,
            name=template.name,
            description=template.description,
            entity_type=template.entity_type,
            trigger=template.trigger,
            conditions=dump_conditions(template.conditions),
            actions=dump_actions(template.actions),
            is_active=template.is_active,
            priority=template.priority,
            created_at=template.created_at,
        )


class WorkflowExecutionResponse(BaseModel):
    id: str
    workflow_id: str
    entity_type: str
    entity_id: str
    event_id: Optional[str] = None
    status: ExecutionStatusStr
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    executed_at: datetime
    completed_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, execution: WorkflowExecution) -> "WorkflowExecutionResponse":
        return cls(
            id=execution.id,
            workflow_id=execution.workflow_id,
            entity_type=execution.entity_type,
            entity_id=execution.entity_id,
            event_id=execution.event_id,
            status=execution.status,
            result=execution.result,
            error=execution.error,
            executed_at=execution.executed_at,
            completed_at=execution.completed_at,
        )

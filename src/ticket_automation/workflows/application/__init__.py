"""
Workflow Application Layer
==========================

Contains:
- Services: ActionExecutor and WorkflowOrchestrator
- DTOs: Data transfer objects for API serialization

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from ticket_automation.workflows.application.dto import (
    WorkflowTemplateCreateDTO,
    WorkflowTemplateUpdateDTO,
    WorkflowTemplateResponse,
    WorkflowExecutionResponse,
)
from ticket_automation.workflows.application.services import (
    ActionExecutor,
    WorkflowOrchestrator,
    IWorkflowTemplateRepository,
    IWorkflowExecutionRepository,
    comment_hash,
)

__all__ = [
    # DTOs
    "WorkflowTemplateCreateDTO",
    "WorkflowTemplateUpdateDTO",
    "WorkflowTemplateResponse",
    "WorkflowExecutionResponse",
    # Services
    "ActionExecutor",
    "WorkflowOrchestrator",
    "comment_hash",
    # Repository Interfaces
    "IWorkflowTemplateRepository",
    "IWorkflowExecutionRepository",
]

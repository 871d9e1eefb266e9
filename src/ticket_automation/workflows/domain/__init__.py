"""
Workflow Domain Layer
=====================

Contains:
- Entities: WorkflowTemplate, WorkflowExecution, ActionResult
- Value Objects: the tagged action variants

This layer has no dependencies on infrastructure.
"""

from ticket_automation.workflows.domain.entities import (
    WorkflowTemplate,
    WorkflowExecution,
    ActionResult,
)
from ticket_automation.workflows.domain.value_objects import (
    WorkflowAction,
    AssignAction,
    ChangeStatusAction,
    ChangePriorityAction,
    AddCommentAction,
    SendNotificationAction,
    SendWhatsAppAction,
    parse_actions,
    dump_actions,
)
from ticket_automation.shared.domain import parse_conditions, dump_conditions

__all__ = [
    # Entities
    "WorkflowTemplate",
    "WorkflowExecution",
    "ActionResult",
    # Actions
    "WorkflowAction",
    "AssignAction",
    "ChangeStatusAction",
    "ChangePriorityAction",
    "AddCommentAction",
    "SendNotificationAction",
    "SendWhatsAppAction",
    "parse_conditions",
    "parse_actions",
    "dump_conditions",
    "dump_actions",
]

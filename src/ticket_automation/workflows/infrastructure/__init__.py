"""
Workflow Infrastructure Layer
=============================

- Models: SQLAlchemy ORM models
- Repositories: Data access layer
"""

from ticket_automation.workflows.infrastructure.models import (
    WorkflowTemplateModel,
    WorkflowExecutionModel,
)
from ticket_automation.workflows.infrastructure.repositories import (
    SQLAlchemyWorkflowTemplateRepository,
    SQLAlchemyWorkflowExecutionRepository,
)

__all__ = [
    "WorkflowTemplateModel",
    "WorkflowExecutionModel",
    "SQLAlchemyWorkflowTemplateRepository",
    "SQLAlchemyWorkflowExecutionRepository",
]

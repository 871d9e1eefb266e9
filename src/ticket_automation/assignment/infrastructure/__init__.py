"""
Assignment Infrastructure Layer
===============================

- Models: SQLAlchemy ORM models
- Repositories: Data access layer
"""

from ticket_automation.assignment.infrastructure.models import AssignmentRuleModel
from ticket_automation.assignment.infrastructure.repositories import SQLAlchemyAssignmentRuleRepository

__all__ = [
    "AssignmentRuleModel",
    "SQLAlchemyAssignmentRuleRepository",
]

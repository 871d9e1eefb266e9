"""
Assignment Application Layer
============================

Contains:
- Services: AutoAssignmentResolver
- DTOs: Data transfer objects for API serialization
"""

from ticket_automation.assignment.application.dto import (
    AssignmentRuleCreateDTO,
    AssignmentRuleUpdateDTO,
    AssignmentRuleResponse,
    AssignmentStatsResponse,
    TechnicianWorkloadResponse,
)
from ticket_automation.assignment.application.services import (
    AutoAssignmentResolver,
    IAssignmentRuleRepository,
)

__all__ = [
    # DTOs
    "AssignmentRuleCreateDTO",
    "AssignmentRuleUpdateDTO",
    "AssignmentRuleResponse",
    "AssignmentStatsResponse",
    "TechnicianWorkloadResponse",
    # Services
    "AutoAssignmentResolver",
    # Repository Interfaces
    "IAssignmentRuleRepository",
]

"""
Assignment Application DTOs
===========================

Pydantic models for the assignment rule API.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

from ticket_automation.assignment.domain import AssignmentRule
from ticket_automation.shared.domain import Condition

AssignmentTypeStr = Literal["round_robin", "least_busy", "skill_based", "location_based", "specific_user"]


# ========== Request DTOs ==========

class AssignmentRuleCreateDTO(BaseModel):
    """Request model for creating an assignment rule."""
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    is_active: bool = True
    priority: int = 0
    conditions: List[Condition] = Field(
        default_factory=list,
        description="Over title, description, text, priority, status, asset_type, department, location"
    )
    assignment_type: AssignmentTypeStr
    target_user_id: Optional[str] = None
    target_user_ids: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_targets(self) -> "AssignmentRuleCreateDTO":
        if self.assignment_type == "specific_user" and not self.target_user_id:
            raise ValueError("specific_user rules require target_user_id")
        if self.assignment_type == "round_robin" and not self.target_user_ids:
            raise ValueError("round_robin rules require target_user_ids")
        return self


class AssignmentRuleUpdateDTO(BaseModel):
    """Partial update; omitted fields keep their value."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    is_active: Optional[bool] = None
    priority: Optional[int] = None
    conditions: Optional[List[Condition]] = None
    assignment_type: Optional[AssignmentTypeStr] = None
    target_user_id: Optional[str] = None
    target_user_ids: Optional[List[str]] = None


# ========== Response DTOs ==========

class AssignmentRuleResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    is_active: bool
    priority: int
    conditions: List[Dict[str, Any]]
    assignment_type: str
    target_user_id: Optional[str] = None
    target_user_ids: List[str]
    created_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, rule: AssignmentRule) -> "AssignmentRuleResponse":
        return cls(
            id=rule.id,
            name=rule.name,
            description=rule.description,
            is_active=rule.is_active,
            priority=rule.priority,
            conditions=[c.model_dump(mode="json") for c in rule.conditions],
            assignment_type=rule.assignment_type,
            target_user_id=rule.target_user_id,
            target_user_ids=rule.target_user_ids,
            created_at=rule.created_at,
        )


class TechnicianWorkloadResponse(BaseModel):
    id: str
    name: str
    email: str
    active_tickets: int
    is_available: bool


class AssignmentStatsResponse(BaseModel):
    active_rules: int
    available_technicians: int
    technician_workload: List[TechnicianWorkloadResponse]

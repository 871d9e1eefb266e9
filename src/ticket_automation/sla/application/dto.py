"""
SLA Application DTOs
====================

Pydantic models for the SLA policy and ticket SLA API.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from ticket_automation.sla.domain import SLAPolicy, TicketSLA

PriorityStr = Literal["critical", "high", "medium", "low"]
SLAStatusStr = Literal["on_track", "at_risk", "breached"]


# ========== Request DTOs ==========

class SLAPolicyCreateDTO(BaseModel):
    """Request model for creating an SLA policy."""
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    priority: PriorityStr = Field(..., description="Ticket priority the policy applies to")
    response_time_minutes: int = Field(..., ge=1, description="Budget for the first response")
    resolution_time_minutes: int = Field(..., ge=1, description="Budget for the resolution")
    business_hours_only: bool = Field(default=True, description="Count only Mon-Fri working hours")
    escalation_enabled: bool = True
    escalation_user_id: Optional[str] = None
    notify_before_minutes: int = Field(default=30, ge=0, description="Warning window before a deadline")
    is_active: bool = True


class SLAPolicyUpdateDTO(BaseModel):
    """Partial update; omitted fields keep their value."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    priority: Optional[PriorityStr] = None
    response_time_minutes: Optional[int] = Field(None, ge=1)
    resolution_time_minutes: Optional[int] = Field(None, ge=1)
    business_hours_only: Optional[bool] = None
    escalation_enabled: Optional[bool] = None
    escalation_user_id: Optional[str] = None
    notify_before_minutes: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None


# ========== Response DTOs ==========

class SLAPolicyResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    priority: str
    response_time_minutes: int
    resolution_time_minutes: int
    business_hours_only: bool
    escalation_enabled: bool
    escalation_user_id: Optional[str] = None
    notify_before_minutes: int
    is_active: bool
    created_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, policy: SLAPolicy) -> "SLAPolicyResponse":
        return cls(
            id=policy.id,
            name=policy.name,
            description=policy.description,
            priority=policy.priority,
            response_time_minutes=policy.response_time_minutes,
            resolution_time_minutes=policy.resolution_time_minutes,
            business_hours_only=policy.business_hours_only,
            escalation_enabled=policy.escalation_enabled,
            escalation_user_id=policy.escalation_user_id,
            notify_before_minutes=policy.notify_before_minutes,
            is_active=policy.is_active,
            created_at=policy.created_at,
        )


class TicketSLAResponse(BaseModel):
    id: str
    ticket_id: str
    policy_id: str
    status: SLAStatusStr
    response_deadline: datetime
    resolution_deadline: datetime
    first_response_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    response_breached: bool
    resolution_breached: bool
    warnings_sent: int
    escalated: bool
    escalated_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, sla: TicketSLA) -> "TicketSLAResponse":
        return cls(
            id=sla.id,
            ticket_id=sla.ticket_id,
            policy_id=sla.policy_id,
            status=sla.status,
            response_deadline=sla.response_deadline,
            resolution_deadline=sla.resolution_deadline,
            first_response_at=sla.first_response_at,
            resolved_at=sla.resolved_at,
            response_breached=sla.response_breached,
            resolution_breached=sla.resolution_breached,
            warnings_sent=sla.warnings_sent,
            escalated=sla.escalated,
            escalated_at=sla.escalated_at,
        )


class SLAStatsResponse(BaseModel):
    total: int = Field(..., description="Unresolved tickets under SLA")
    on_track: int
    at_risk: int
    breached: int
    response_breaches: int = Field(..., description="All time")
    resolution_breaches: int = Field(..., description="All time")
    compliance_rate: float = Field(..., description="Percent of SLAs without any breach")

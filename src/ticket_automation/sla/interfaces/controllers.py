"""
SLA Controllers (API Routes)
============================

Administration endpoints for SLA policies, ticket SLA state and SLA
statistics.

Controllers are thin - they delegate to application services.
"""

import uuid
from dataclasses import replace
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from ticket_automation.infrastructure.container import AutomationServices, get_automation_services
from ticket_automation.infrastructure.database import get_session
from ticket_automation.shared.infrastructure.logging import get_logger
from ticket_automation.sla.application import (
    ISLAPolicyRepository,
    ITicketSLARepository,
    SLAPolicyCreateDTO,
    SLAPolicyUpdateDTO,
    SLAPolicyResponse,
    SLAStatsResponse,
    TicketSLAResponse,
)
from ticket_automation.sla.domain import SLAPolicy
from ticket_automation.sla.infrastructure import (
    SQLAlchemySLAPolicyRepository,
    SQLAlchemyTicketSLARepository,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/workflows", tags=["SLA"])

NULLABLE_POLICY_FIELDS = {"description", "escalation_user_id"}


# ========== Example payloads for Swagger ==========

POLICY_CREATE_EXAMPLE = {
    "name": "High priority",
    "priority": "high",
    "response_time_minutes": 30,
    "resolution_time_minutes": 240,
    "business_hours_only": False,
    "notify_before_minutes": 15,
    "escalation_enabled": True,
    "escalation_user_id": "5d2a7c3e-9b1f-4e6a-8c0d-3f4e5a6b7c8d"
}

TICKET_SLA_EXAMPLE = {
    "id": "a1b2c3d4-e5f6-4a7b-8c9d-0e1f2a3b4c5d",
    "ticket_id": "123e4567-e89b-12d3-a456-426614174000",
    "policy_id": "9f8e7d6c-5b4a-4392-8170-6f5e4d3c2b1a",
    "status": "on_track",
    "response_deadline": "2024-01-01T10:30:00Z",
    "resolution_deadline": "2024-01-01T14:00:00Z",
    "first_response_at": None,
    "resolved_at": None,
    "response_breached": False,
    "resolution_breached": False,
    "warnings_sent": 0,
    "escalated": False,
    "escalated_at": None
}

SLA_STATS_EXAMPLE = {
    "total": 12,
    "on_track": 9,
    "at_risk": 2,
    "breached": 1,
    "response_breaches": 3,
    "resolution_breaches": 1,
    "compliance_rate": 92.5
}


# ========== Dependencies ==========

async def get_policy_repository(
    session: AsyncSession = Depends(get_session)
) -> ISLAPolicyRepository:
    return SQLAlchemySLAPolicyRepository(session)


async def get_ticket_sla_repository(
    session: AsyncSession = Depends(get_session)
) -> ITicketSLARepository:
    return SQLAlchemyTicketSLARepository(session)


async def _get_or_404(repo: ISLAPolicyRepository, policy_id: str) -> SLAPolicy:
    policy = await repo.get(policy_id)
    if policy is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"SLA policy {policy_id} not found"
        )
    return policy


# ========== Route Handlers ==========

@router.get("/sla-policies", response_model=List[SLAPolicyResponse])
async def list_policies(repo: ISLAPolicyRepository = Depends(get_policy_repository)):
    return [SLAPolicyResponse.from_entity(p) for p in await repo.list_all()]


@router.post(
    "/sla-policies",
    response_model=SLAPolicyResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create SLA policy",
    description="""
    Response and resolution budgets for one ticket priority.

    With `business_hours_only` only Monday-Friday working hours count towards
    the budgets. A warning goes to the assignee `notify_before_minutes` before
    a deadline; a breach notifies the assignee and requester and, when
    escalation is enabled, the escalation user (once per ticket).
    """,
    responses={201: {"content": {"application/json": {"example": POLICY_CREATE_EXAMPLE}}}}
)
async def create_policy(
    request: SLAPolicyCreateDTO,
    repo: ISLAPolicyRepository = Depends(get_policy_repository)
):
    policy = await repo.create(SLAPolicy(id=str(uuid.uuid4()), **request.model_dump()))
    logger.info("SLA policy created", extra={"policy_id": policy.id, "priority": policy.priority})
    return SLAPolicyResponse.from_entity(policy)


@router.put("/sla-policies/{policy_id}", response_model=SLAPolicyResponse)
async def update_policy(
    policy_id: str,
    request: SLAPolicyUpdateDTO,
    repo: ISLAPolicyRepository = Depends(get_policy_repository)
):
    policy = await _get_or_404(repo, policy_id)
    changes = {
        name: value
        for name, value in request.model_dump(exclude_unset=True).items()
        if value is not None or name in NULLABLE_POLICY_FIELDS
    }
    policy = await repo.update(replace(policy, **changes))
    logger.info("SLA policy updated", extra={"policy_id": policy.id})
    return SLAPolicyResponse.from_entity(policy)


@router.delete("/sla-policies/{policy_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_policy(
    policy_id: str,
    repo: ISLAPolicyRepository = Depends(get_policy_repository)
):
    if not await repo.delete(policy_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"SLA policy {policy_id} not found"
        )
    logger.info("SLA policy deleted", extra={"policy_id": policy_id})


@router.get(
    "/sla-stats",
    response_model=SLAStatsResponse,
    summary="SLA statistics",
    responses={200: {"content": {"application/json": {"example": SLA_STATS_EXAMPLE}}}}
)
async def sla_stats(services: AutomationServices = Depends(get_automation_services)):
    return await services.tracker.get_sla_stats()


@router.get(
    "/ticket-sla/{ticket_id}",
    response_model=TicketSLAResponse,
    summary="SLA state of a ticket",
    responses={
        200: {"content": {"application/json": {"example": TICKET_SLA_EXAMPLE}}},
        404: {"description": "Ticket has no SLA"}
    }
)
async def get_ticket_sla(
    ticket_id: str,
    repo: ITicketSLARepository = Depends(get_ticket_sla_repository)
):
    sla = await repo.get_by_ticket(ticket_id)
    if sla is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="SLA not found for this ticket"
        )
    return TicketSLAResponse.from_entity(sla)

"""
Assignment Controllers (API Routes)
===================================

Administration endpoints for auto-assignment rules and workload stats.
"""

import uuid
from dataclasses import replace
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from ticket_automation.assignment.application import (
    AutoAssignmentResolver,
    IAssignmentRuleRepository,
    AssignmentRuleCreateDTO,
    AssignmentRuleUpdateDTO,
    AssignmentRuleResponse,
    AssignmentStatsResponse,
)
from ticket_automation.assignment.domain import AssignmentRule
from ticket_automation.assignment.infrastructure import SQLAlchemyAssignmentRuleRepository
from ticket_automation.infrastructure.database import get_session
from ticket_automation.infrastructure.database.repositories import SQLAlchemyEntityStore
from ticket_automation.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/workflows", tags=["Auto-Assignment"])


# ========== Example payloads for Swagger ==========

RULE_CREATE_EXAMPLE = {
    "name": "Network issues to the network team",
    "priority": 5,
    "conditions": [
        {"field": "text", "operator": "contains", "value": "vpn"}
    ],
    "assignment_type": "round_robin",
    "target_user_ids": [
        "0b6c2f8e-8d4a-4c1e-9f57-1a2b3c4d5e6f",
        "7e9d1a2b-3c4d-4e5f-8a9b-0c1d2e3f4a5b"
    ]
}

STATS_RESPONSE_EXAMPLE = {
    "active_rules": 3,
    "available_technicians": 2,
    "technician_workload": [
        {
            "id": "0b6c2f8e-8d4a-4c1e-9f57-1a2b3c4d5e6f",
            "name": "Dana Reyes",
            "email": "dana@example.com",
            "active_tickets": 4,
            "is_available": True
        }
    ]
}


# ========== Dependencies ==========

async def get_rule_repository(
    session: AsyncSession = Depends(get_session)
) -> IAssignmentRuleRepository:
    return SQLAlchemyAssignmentRuleRepository(session)


async def get_assignment_resolver(
    session: AsyncSession = Depends(get_session)
) -> AutoAssignmentResolver:
    return AutoAssignmentResolver(
        SQLAlchemyEntityStore(session),
        SQLAlchemyAssignmentRuleRepository(session),
    )


async def _get_or_404(repo: IAssignmentRuleRepository, rule_id: str) -> AssignmentRule:
    rule = await repo.get(rule_id)
    if rule is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Assignment rule {rule_id} not found"
        )
    return rule


# ========== Route Handlers ==========

@router.get("/assignment-rules", response_model=List[AssignmentRuleResponse])
async def list_rules(repo: IAssignmentRuleRepository = Depends(get_rule_repository)):
    return [AssignmentRuleResponse.from_entity(r) for r in await repo.list_all()]


@router.post(
    "/assignment-rules",
    response_model=AssignmentRuleResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create assignment rule",
    description="""
    **Assignment types**:
    - `specific_user`: the `target_user_id`, if available
    - `round_robin`: rotate through `target_user_ids`
    - `least_busy`: technician with the fewest open/in-progress tickets
    - `skill_based`: currently the same as `least_busy`
    - `location_based`: least busy technician at the asset's (or requester's) location

    **Condition fields**: `title`, `description`, `text`, `priority`, `status`,
    `asset_type`, `department`, `location`
    """,
    responses={201: {"content": {"application/json": {"example": RULE_CREATE_EXAMPLE}}}}
)
async def create_rule(
    request: AssignmentRuleCreateDTO,
    repo: IAssignmentRuleRepository = Depends(get_rule_repository)
):
    rule = await repo.create(AssignmentRule(
        id=str(uuid.uuid4()),
        name=request.name,
        description=request.description,
        assignment_type=request.assignment_type,
        conditions=request.conditions,
        target_user_id=request.target_user_id,
        target_user_ids=request.target_user_ids,
        is_active=request.is_active,
        priority=request.priority,
    ))
    logger.info("Assignment rule created", extra={"rule_id": rule.id, "rule": rule.name})
    return AssignmentRuleResponse.from_entity(rule)


@router.put("/assignment-rules/{rule_id}", response_model=AssignmentRuleResponse)
async def update_rule(
    rule_id: str,
    request: AssignmentRuleUpdateDTO,
    repo: IAssignmentRuleRepository = Depends(get_rule_repository)
):
    rule = await _get_or_404(repo, rule_id)
    changes = {
        name: getattr(request, name)
        for name in request.model_fields_set
        if getattr(request, name) is not None
    }
    rule = replace(rule, **changes)
    rule.validate()
    rule = await repo.update(rule)
    logger.info("Assignment rule updated", extra={"rule_id": rule.id})
    return AssignmentRuleResponse.from_entity(rule)


@router.patch("/assignment-rules/{rule_id}/toggle", response_model=AssignmentRuleResponse)
async def toggle_rule(
    rule_id: str,
    repo: IAssignmentRuleRepository = Depends(get_rule_repository)
):
    rule = await _get_or_404(repo, rule_id)
    rule = await repo.update(replace(rule, is_active=not rule.is_active))
    logger.info("Assignment rule toggled", extra={"rule_id": rule.id, "is_active": rule.is_active})
    return AssignmentRuleResponse.from_entity(rule)


@router.delete("/assignment-rules/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_rule(
    rule_id: str,
    repo: IAssignmentRuleRepository = Depends(get_rule_repository)
):
    if not await repo.delete(rule_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Assignment rule {rule_id} not found"
        )
    logger.info("Assignment rule deleted", extra={"rule_id": rule_id})


@router.get(
    "/assignment-stats",
    response_model=AssignmentStatsResponse,
    summary="Technician workload",
    responses={200: {"content": {"application/json": {"example": STATS_RESPONSE_EXAMPLE}}}}
)
async def assignment_stats(resolver: AutoAssignmentResolver = Depends(get_assignment_resolver)):
    return await resolver.get_assignment_stats()

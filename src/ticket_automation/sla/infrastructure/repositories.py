"""
SLA Infrastructure Repositories
===============================

Concrete implementations of the SLA repository interfaces using
SQLAlchemy.
"""

from typing import Dict, List, Optional

from sqlalchemy import select, delete, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from ticket_automation.config import SLAStatus
from ticket_automation.core import RepositoryException
from ticket_automation.infrastructure.database.repositories import (
    nested_transaction,
    repository_errors,
    to_uuid,
)
from ticket_automation.sla.application import ISLAPolicyRepository, ITicketSLARepository
from ticket_automation.sla.domain import SLAPolicy, TicketSLA
from ticket_automation.sla.infrastructure.models import SLAPolicyModel, TicketSLAModel


def policy_from_model(model: SLAPolicyModel) -> SLAPolicy:
    return SLAPolicy(
        id=str(model.id),
        name=model.name,
        description=model.description,
        priority=model.priority,
        response_time_minutes=model.response_time_minutes,
        resolution_time_minutes=model.resolution_time_minutes,
        business_hours_only=model.business_hours_only,
        notify_before_minutes=model.notify_before_minutes,
        escalation_enabled=model.escalation_enabled,
        escalation_user_id=str(model.escalation_user_id) if model.escalation_user_id else None,
        is_active=model.is_active,
        created_at=model.created_at,
    )


def ticket_sla_from_model(model: TicketSLAModel) -> TicketSLA:
    return TicketSLA(
        id=str(model.id),
        ticket_id=str(model.ticket_id),
        policy_id=str(model.policy_id),
        response_deadline=model.response_deadline,
        resolution_deadline=model.resolution_deadline,
        status=model.status,
        first_response_at=model.first_response_at,
        resolved_at=model.resolved_at,
        response_breached=model.response_breached,
        resolution_breached=model.resolution_breached,
        response_warning_sent=model.response_warning_sent,
        resolution_warning_sent=model.resolution_warning_sent,
        warnings_sent=model.warnings_sent,
        escalated=model.escalated,
        escalated_at=model.escalated_at,
        created_at=model.created_at,
    )


class SQLAlchemySLAPolicyRepository(ISLAPolicyRepository):
    """SLA policies in the 'sla_policies' table."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def find_active_for_priority(self, priority: str) -> Optional[SLAPolicy]:
        stmt = (
            select(SLAPolicyModel)
            .where(SLAPolicyModel.priority == priority, SLAPolicyModel.is_active.is_(True))
            .order_by(SLAPolicyModel.created_at.asc(), SLAPolicyModel.id.asc())
            .limit(1)
        )
        async with repository_errors("find_sla_policy"):
            result = await self._session.execute(stmt)
            model = result.scalar_one_or_none()
        return policy_from_model(model) if model else None

    async def _get_model(self, policy_id: str) -> Optional[SLAPolicyModel]:
        policy_uuid = to_uuid(policy_id)
        if policy_uuid is None:
            return None
        return await self._session.get(SLAPolicyModel, policy_uuid)

    async def get(self, policy_id: str) -> Optional[SLAPolicy]:
        async with repository_errors("get_sla_policy"):
            model = await self._get_model(policy_id)
        return policy_from_model(model) if model else None

    async def list_all(self) -> List[SLAPolicy]:
        stmt = select(SLAPolicyModel).order_by(SLAPolicyModel.priority.asc(), SLAPolicyModel.created_at.asc())
        async with repository_errors("list_sla_policies"):
            result = await self._session.execute(stmt)
            models = result.scalars().all()
        return [policy_from_model(m) for m in models]

    def _apply(self, model: SLAPolicyModel, policy: SLAPolicy) -> None:
        model.name = policy.name
        model.description = policy.description
        model.priority = policy.priority
        model.response_time_minutes = policy.response_time_minutes
        model.resolution_time_minutes = policy.resolution_time_minutes
        model.business_hours_only = policy.business_hours_only
        model.notify_before_minutes = policy.notify_before_minutes
        model.escalation_enabled = policy.escalation_enabled
        model.escalation_user_id = to_uuid(policy.escalation_user_id)
        model.is_active = policy.is_active

    async def create(self, policy: SLAPolicy) -> SLAPolicy:
        model = SLAPolicyModel()
        self._apply(model, policy)
        async with repository_errors("create_sla_policy"):
            self._session.add(model)
            await self._session.flush()
            await self._session.refresh(model)
        return policy_from_model(model)

    async def update(self, policy: SLAPolicy) -> SLAPolicy:
        async with repository_errors("update_sla_policy"):
            model = await self._get_model(policy.id)
            if model is None:
                raise RepositoryException(f"SLA policy {policy.id} not found")
            self._apply(model, policy)
            await self._session.flush()
            await self._session.refresh(model)
        return policy_from_model(model)

    async def delete(self, policy_id: str) -> bool:
        policy_uuid = to_uuid(policy_id)
        if policy_uuid is None:
            return False
        async with repository_errors("delete_sla_policy"):
            result = await self._session.execute(
                delete(SLAPolicyModel).where(SLAPolicyModel.id == policy_uuid)
            )
        return result.rowcount > 0


class SQLAlchemyTicketSLARepository(ITicketSLARepository):
    """Per-ticket SLA state in the 'ticket_slas' table."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_ticket(self, ticket_id: str) -> Optional[TicketSLA]:
        ticket_uuid = to_uuid(ticket_id)
        if ticket_uuid is None:
            return None
        stmt = select(TicketSLAModel).where(TicketSLAModel.ticket_id == ticket_uuid)
        async with repository_errors("get_ticket_sla"):
            result = await self._session.execute(stmt)
            model = result.scalar_one_or_none()
        return ticket_sla_from_model(model) if model else None

    async def create(self, sla: TicketSLA) -> TicketSLA:
        model = TicketSLAModel(
            ticket_id=to_uuid(sla.ticket_id),
            policy_id=to_uuid(sla.policy_id),
            response_deadline=sla.response_deadline,
            resolution_deadline=sla.resolution_deadline,
            status=sla.status,
            created_at=sla.created_at,
        )
        async with repository_errors("create_ticket_sla"):
            self._session.add(model)
            await self._session.flush()
        sla.id = str(model.id)
        return sla

    async def save(self, sla: TicketSLA) -> None:
        async with repository_errors("save_ticket_sla"):
            model = await self._session.get(TicketSLAModel, to_uuid(sla.id))
            if model is None:
                raise RepositoryException(f"Ticket SLA {sla.id} not found")

            model.status = sla.status
            model.first_response_at = sla.first_response_at
            model.resolved_at = sla.resolved_at
            model.response_breached = sla.response_breached
            model.resolution_breached = sla.resolution_breached
            model.response_warning_sent = sla.response_warning_sent
            model.resolution_warning_sent = sla.resolution_warning_sent
            model.warnings_sent = sla.warnings_sent
            model.escalated = sla.escalated
            model.escalated_at = sla.escalated_at
            await self._session.flush()

    async def list_active(self) -> List[TicketSLA]:
        stmt = (
            select(TicketSLAModel)
            .where(TicketSLAModel.resolved_at.is_(None))
            .order_by(TicketSLAModel.created_at.asc())
        )
        async with repository_errors("list_active_ticket_slas"):
            result = await self._session.execute(stmt)
            models = result.scalars().all()
        return [ticket_sla_from_model(m) for m in models]

    def savepoint(self):
        return nested_transaction(self._session)

    async def count_stats(self) -> Dict[str, int]:
        active = TicketSLAModel.resolved_at.is_(None)
        stmt = select(
            func.count().filter(active).label("active"),
            func.count().filter(active, TicketSLAModel.status == SLAStatus.ON_TRACK).label("on_track"),
            func.count().filter(active, TicketSLAModel.status == SLAStatus.AT_RISK).label("at_risk"),
            func.count().filter(active, TicketSLAModel.status == SLAStatus.BREACHED).label("breached"),
            func.count().filter(TicketSLAModel.response_breached.is_(True)).label("response_breaches"),
            func.count().filter(TicketSLAModel.resolution_breached.is_(True)).label("resolution_breaches"),
            func.count().label("total"),
            func.count().filter(
                or_(TicketSLAModel.response_breached.is_(True), TicketSLAModel.resolution_breached.is_(True))
            ).label("with_breach"),
        ).select_from(TicketSLAModel)

        async with repository_errors("count_ticket_sla_stats"):
            row = (await self._session.execute(stmt)).one()
        return {key: int(value or 0) for key, value in row._mapping.items()}

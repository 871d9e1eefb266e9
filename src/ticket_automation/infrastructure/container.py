"""
Service Wiring
==============

Builds the automation engines over one database session.

Each automation call gets its own session (a unit of work) that is
committed when the call succeeds and rolled back when it raises.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ticket_automation.assignment.application import AutoAssignmentResolver
from ticket_automation.assignment.infrastructure import SQLAlchemyAssignmentRuleRepository
from ticket_automation.config import Settings, settings as default_settings
from ticket_automation.core import IMessagingGateway
from ticket_automation.infrastructure.database import get_session, get_session_context
from ticket_automation.infrastructure.database.repositories import (
    SQLAlchemyEntityStore,
    SQLAlchemyNotificationSink,
)
from ticket_automation.shared.domain import ConditionEvaluator
from ticket_automation.sla.application import SLATracker
from ticket_automation.sla.domain import BusinessHours, BusinessHoursCalculator
from ticket_automation.sla.infrastructure import (
    SQLAlchemySLAPolicyRepository,
    SQLAlchemyTicketSLARepository,
)
from ticket_automation.workflows.application import ActionExecutor, WorkflowOrchestrator
from ticket_automation.workflows.infrastructure import (
    SQLAlchemyWorkflowTemplateRepository,
    SQLAlchemyWorkflowExecutionRepository,
)


@dataclass
class AutomationServices:
    """The three engines, sharing one session."""

    orchestrator: WorkflowOrchestrator
    resolver: AutoAssignmentResolver
    tracker: SLATracker


def business_hours_calculator(config: Settings = default_settings) -> BusinessHoursCalculator:
    return BusinessHoursCalculator(BusinessHours(
        start_hour=config.business_hours_start,
        end_hour=config.business_hours_end,
        time_zone=config.business_timezone,
    ))


def build_services(
    session: AsyncSession,
    messaging: IMessagingGateway,
    config: Settings = default_settings
) -> AutomationServices:
    store = SQLAlchemyEntityStore(session)
    notifications = SQLAlchemyNotificationSink(session, dedupe_seconds=config.notification_dedupe_seconds)
    evaluator = ConditionEvaluator()

    return AutomationServices(
        orchestrator=WorkflowOrchestrator(
            SQLAlchemyWorkflowTemplateRepository(session),
            SQLAlchemyWorkflowExecutionRepository(session),
            ActionExecutor(store, notifications, messaging),
            evaluator,
        ),
        resolver=AutoAssignmentResolver(
            store,
            SQLAlchemyAssignmentRuleRepository(session),
            evaluator,
        ),
        tracker=SLATracker(
            store,
            SQLAlchemySLAPolicyRepository(session),
            SQLAlchemyTicketSLARepository(session),
            notifications,
            messaging,
            business_hours_calculator(config),
        ),
    )


class SessionServicesFactory:
    """Unit-of-work factory: one committed session per automation call."""

    def __init__(self, messaging: IMessagingGateway, config: Settings = default_settings):
        self._messaging = messaging
        self._config = config

    @asynccontextmanager
    async def __call__(self) -> AsyncIterator[AutomationServices]:
        async with get_session_context() as session:
            yield build_services(session, self._messaging, self._config)


# ========== FastAPI dependencies ==========

def get_messaging_gateway(request: Request) -> IMessagingGateway:
    """Gateway created in the application lifespan."""
    return request.app.state.messaging


async def get_automation_services(
    session: AsyncSession = Depends(get_session),
    messaging: IMessagingGateway = Depends(get_messaging_gateway)
) -> AutomationServices:
    return build_services(session, messaging)

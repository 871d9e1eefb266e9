"""
Ticket Lifecycle Automation
===========================

Entry points the rest of the application calls when tickets and assets
change.

Every automation call runs in its own unit of work on the task
dispatcher: the caller's mutation never waits on it and never sees its
failures. Failed calls are retried and finally dead-lettered.

Workflow templates commit one by one. A retry of the same event skips the
templates that already committed an execution for it.
"""

import asyncio
import uuid
from contextlib import AbstractAsyncContextManager
from typing import Any, Callable, Dict, List, Optional

from ticket_automation.config import EntityType, WorkflowTrigger, CLOSED_TICKET_STATUSES
from ticket_automation.core import RepositoryException
from ticket_automation.shared.infrastructure.dispatch import TaskDispatcher
from ticket_automation.shared.infrastructure.logging import get_logger, log_latency

logger = get_logger(__name__)

UnitOfWork = Callable[[], AbstractAsyncContextManager]


class TicketAutomation:
    """
    Facade over the workflow, assignment and SLA engines.

    Args:
        unit_of_work: Returns an async context manager yielding
            AutomationServices bound to a fresh session
        dispatcher: Background runner with retry and dead-lettering
    """

    def __init__(self, unit_of_work: UnitOfWork, dispatcher: TaskDispatcher):
        self._unit_of_work = unit_of_work
        self._dispatcher = dispatcher

    @property
    def dispatcher(self) -> TaskDispatcher:
        return self._dispatcher

    # ========== Engine operations ==========

    def execute_workflows(
        self,
        entity_type: str,
        trigger: str,
        entity_id: str,
        current: Dict[str, Any],
        previous: Optional[Dict[str, Any]] = None
    ) -> asyncio.Task:
        """Run matching workflows in the background."""
        event_id = str(uuid.uuid4())
        return self._dispatcher.submit(
            f"execute_workflows:{entity_type}:{trigger}",
            self._execute_workflows,
            entity_type, trigger, entity_id, current, previous, event_id,
        )

    async def auto_assign_ticket(self, ticket_id: str) -> Optional[str]:
        """Assignee ID, or None if nobody could be assigned or assignment kept failing."""
        return await self._dispatcher.run("auto_assign_ticket", self._auto_assign, ticket_id)

    def create_sla(self, ticket_id: str) -> asyncio.Task:
        return self._dispatcher.submit("create_sla", self._create_sla, ticket_id)

    def record_first_response(self, ticket_id: str) -> asyncio.Task:
        return self._dispatcher.submit("record_first_response", self._record_first_response, ticket_id)

    def record_resolution(self, ticket_id: str) -> asyncio.Task:
        return self._dispatcher.submit("record_resolution", self._record_resolution, ticket_id)

    async def check_all_slas(self) -> Optional[Dict[str, int]]:
        """Periodic sweep; returns the sweep summary, or None if the sweep kept failing."""
        return await self._dispatcher.run("check_all_slas", self._check_all_slas)

    async def get_assignment_stats(self) -> Dict[str, Any]:
        async with self._unit_of_work() as services:
            return await services.resolver.get_assignment_stats()

    async def get_sla_stats(self) -> Dict[str, Any]:
        async with self._unit_of_work() as services:
            return await services.tracker.get_sla_stats()

    # ========== Lifecycle hooks ==========

    def on_ticket_created(self, ticket_id: str, current: Dict[str, Any]) -> List[asyncio.Task]:
        logger.info("Ticket created, dispatching automation", extra={"ticket_id": ticket_id})
        return [
            self.execute_workflows(EntityType.TICKET, WorkflowTrigger.CREATED, ticket_id, current),
            self._dispatcher.submit("auto_assign_ticket", self._auto_assign, ticket_id),
            self.create_sla(ticket_id),
        ]

    def on_status_changed(
        self,
        ticket_id: str,
        current: Dict[str, Any],
        previous: Dict[str, Any]
    ) -> List[asyncio.Task]:
        tasks = [
            self.execute_workflows(
                EntityType.TICKET, WorkflowTrigger.STATUS_CHANGED, ticket_id, current, previous
            )
        ]
        if _is_closing(current.get("status"), previous.get("status")):
            tasks.append(self.record_resolution(ticket_id))
        return tasks

    def on_assignment_changed(
        self,
        ticket_id: str,
        current: Dict[str, Any],
        previous: Dict[str, Any]
    ) -> List[asyncio.Task]:
        return [
            self.execute_workflows(EntityType.TICKET, WorkflowTrigger.ASSIGNED, ticket_id, current, previous)
        ]

    def on_priority_changed(
        self,
        ticket_id: str,
        current: Dict[str, Any],
        previous: Dict[str, Any]
    ) -> List[asyncio.Task]:
        return [
            self.execute_workflows(
                EntityType.TICKET, WorkflowTrigger.PRIORITY_CHANGED, ticket_id, current, previous
            )
        ]

    def on_ticket_updated(
        self,
        ticket_id: str,
        current: Dict[str, Any],
        previous: Optional[Dict[str, Any]] = None
    ) -> List[asyncio.Task]:
        return [
            self.execute_workflows(EntityType.TICKET, WorkflowTrigger.UPDATED, ticket_id, current, previous)
        ]

    def on_ticket_commented(self, ticket_id: str, author_id: str, created_by_id: str) -> List[asyncio.Task]:
        """A comment by anyone but the requester counts as the first response."""
        if author_id == created_by_id:
            return []
        return [self.record_first_response(ticket_id)]

    def on_asset_event(
        self,
        trigger: str,
        asset_id: str,
        current: Dict[str, Any],
        previous: Optional[Dict[str, Any]] = None
    ) -> List[asyncio.Task]:
        return [self.execute_workflows(EntityType.ASSET, trigger, asset_id, current, previous)]

    # ========== Units of work ==========

    async def _execute_workflows(self, entity_type, trigger, entity_id, current, previous, event_id):
        async with self._unit_of_work() as services:
            templates = await services.orchestrator.matching_templates(entity_type, trigger)

        executions = []
        uncommitted = []
        for template in templates:
            try:
                async with self._unit_of_work() as services:
                    execution = await services.orchestrator.run_template(
                        template, entity_id, current, previous, event_id
                    )
            except Exception as e:
                logger.error(
                    "Workflow run rolled back",
                    extra={"workflow_id": template.id, "event_id": event_id, "error": str(e)}
                )
                uncommitted.append(template.id)
                continue
            executions.append(execution)

        if uncommitted:
            raise RepositoryException(
                f"{len(uncommitted)} workflow run(s) for event {event_id} were not committed",
                {"workflow_ids": uncommitted},
            )
        return executions

    async def _auto_assign(self, ticket_id: str) -> Optional[str]:
        async with self._unit_of_work() as services:
            return await services.resolver.auto_assign_ticket(ticket_id)

    async def _create_sla(self, ticket_id: str):
        async with self._unit_of_work() as services:
            return await services.tracker.create_sla(ticket_id)

    async def _record_first_response(self, ticket_id: str):
        async with self._unit_of_work() as services:
            return await services.tracker.record_first_response(ticket_id)

    async def _record_resolution(self, ticket_id: str):
        async with self._unit_of_work() as services:
            return await services.tracker.record_resolution(ticket_id)

    async def _check_all_slas(self) -> Dict[str, int]:
        with log_latency(logger, "sla_sweep"):
            async with self._unit_of_work() as services:
                return await services.tracker.check_all_slas()


def _is_closing(status: Optional[str], previous_status: Optional[str]) -> bool:
    return status in CLOSED_TICKET_STATUSES and previous_status not in CLOSED_TICKET_STATUSES


__all__ = ["TicketAutomation", "UnitOfWork"]

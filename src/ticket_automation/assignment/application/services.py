"""
Assignment Application Services
===============================

Chooses a technician for an unassigned ticket.

Policy chain:
1. An already-assigned ticket keeps its assignee
2. Active rules in priority order; the first matching rule that resolves
   an available technician wins
3. Otherwise the least busy available technician
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ticket_automation.assignment.domain import AssignmentRule
from ticket_automation.config import AssignmentType
from ticket_automation.core import IEntityStore, Ticket, User
from ticket_automation.shared.domain import ConditionEvaluator
from ticket_automation.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


# ========== Repository Interfaces (Dependency Inversion) ==========

class IAssignmentRuleRepository(ABC):
    """Interface for assignment rule data access."""

    @abstractmethod
    async def list_active(self) -> List[AssignmentRule]:
        """Active rules, priority desc, then created_at asc, then id."""

    @abstractmethod
    async def list_all(self) -> List[AssignmentRule]:
        """All rules in the same order as list_active."""

    @abstractmethod
    async def get(self, rule_id: str) -> Optional[AssignmentRule]:
        """Get rule by ID."""

    @abstractmethod
    async def create(self, rule: AssignmentRule) -> AssignmentRule:
        """Create new rule."""

    @abstractmethod
    async def update(self, rule: AssignmentRule) -> AssignmentRule:
        """Update existing rule."""

    @abstractmethod
    async def delete(self, rule_id: str) -> bool:
        """Delete rule; returns False if it did not exist."""


# ========== Application Services ==========

class AutoAssignmentResolver:
    """
    Resolves and applies a technician assignment.

    Store failures propagate; callers run this through the task dispatcher.
    """

    def __init__(
        self,
        store: IEntityStore,
        rules: IAssignmentRuleRepository,
        evaluator: Optional[ConditionEvaluator] = None
    ):
        self._store = store
        self._rules = rules
        self._evaluator = evaluator or ConditionEvaluator()

    async def auto_assign_ticket(self, ticket_id: str) -> Optional[str]:
        """
        Assign a technician to the ticket.

        Returns:
            The assignee ID, or None if nobody could be assigned
        """
        ticket = await self._store.get_ticket(ticket_id)
        if ticket is None:
            logger.warning("Ticket not found for auto-assignment", extra={"ticket_id": ticket_id})
            return None

        if ticket.is_assigned:
            logger.info(
                "Ticket already assigned, skipping",
                extra={"ticket_id": ticket_id, "assigned_to": ticket.assigned_to_id}
            )
            return ticket.assigned_to_id

        creator = ticket.created_by or await self._store.get_user(ticket.created_by_id)
        context = self.build_context(ticket, creator)

        rules = await self._rules.list_active()
        logger.info("Evaluating assignment rules", extra={"ticket_id": ticket_id, "rules": len(rules)})

        assignee_id = None
        for rule in rules:
            if not self._evaluator.evaluate(rule.conditions, context):
                continue

            assignee_id = await self._resolve(rule, ticket, creator)
            if assignee_id:
                logger.info(
                    "Assignment rule matched",
                    extra={"ticket_id": ticket_id, "rule": rule.name, "assignment_type": rule.assignment_type}
                )
                break
            logger.info(
                "Assignment rule matched but resolved nobody",
                extra={"ticket_id": ticket_id, "rule": rule.name}
            )

        if assignee_id is None:
            logger.info("No rule assigned the ticket, using least busy", extra={"ticket_id": ticket_id})
            assignee_id = await self._least_busy()

        if assignee_id is None:
            logger.warning("No technicians available for assignment", extra={"ticket_id": ticket_id})
            return None

        await self._store.update_ticket(ticket.id, assigned_to_id=assignee_id)
        logger.info("Ticket auto-assigned", extra={"ticket_id": ticket_id, "assigned_to": assignee_id})
        return assignee_id

    @staticmethod
    def build_context(ticket: Ticket, creator: Optional[User]) -> Dict[str, Any]:
        """Fields assignment rule conditions can refer to."""
        return {
            "title": ticket.title,
            "description": ticket.description,
            "text": f"{ticket.title} {ticket.description}",
            "priority": ticket.priority,
            "status": ticket.status,
            "asset_type": ticket.asset.asset_type if ticket.asset else None,
            "department": creator.department if creator else None,
            "location": creator.location if creator else None,
        }

    async def _resolve(self, rule: AssignmentRule, ticket: Ticket, creator: Optional[User]) -> Optional[str]:
        assignment_type = rule.assignment_type

        if assignment_type == AssignmentType.SPECIFIC_USER:
            return await self._specific_user(rule.target_user_id)
        if assignment_type == AssignmentType.ROUND_ROBIN:
            return await self._round_robin(rule.rotation)
        if assignment_type == AssignmentType.LEAST_BUSY:
            return await self._least_busy()
        if assignment_type == AssignmentType.SKILL_BASED:
            # No skill data on users yet
            return await self._least_busy()
        if assignment_type == AssignmentType.LOCATION_BASED:
            return await self._by_location(ticket, creator)

        logger.warning("Unknown assignment type", extra={"rule": rule.name, "assignment_type": assignment_type})
        return None

    async def _specific_user(self, user_id: Optional[str]) -> Optional[str]:
        if not user_id:
            return None
        user = await self._store.get_user(user_id)
        return user.id if user and user.is_available else None

    async def _round_robin(self, rotation: List[str]) -> Optional[str]:
        """Next available user after the most recent assignee, wrapping around."""
        if not rotation:
            return None

        users = await self._store.get_users(rotation)
        available = {u.id for u in users if u.is_available}
        if not available:
            return None

        last_assignee = await self._store.get_last_assignee(rotation)
        start = rotation.index(last_assignee) + 1 if last_assignee in rotation else 0

        for offset in range(len(rotation)):
            candidate = rotation[(start + offset) % len(rotation)]
            if candidate in available:
                return candidate
        return None

    async def _least_busy(self, location: Optional[str] = None) -> Optional[str]:
        workloads = await self._store.get_technician_workloads(available_only=True, location=location)
        if not workloads:
            return None
        # min() keeps the first of equal workloads, i.e. the oldest technician
        return min(workloads, key=lambda w: w.active_tickets).user.id

    async def _by_location(self, ticket: Ticket, creator: Optional[User]) -> Optional[str]:
        location = (ticket.asset.office_location if ticket.asset else None) or (
            creator.location if creator else None
        )
        if not location:
            logger.info("No location info, using least busy", extra={"ticket_id": ticket.id})
            return await self._least_busy()

        assignee_id = await self._least_busy(location=location)
        if assignee_id is None:
            logger.info(
                "No technicians in location, using any available",
                extra={"ticket_id": ticket.id, "location": location}
            )
            return await self._least_busy()
        return assignee_id

    async def get_assignment_stats(self) -> Dict[str, Any]:
        """Active rules and per-technician workload for dashboards."""
        rules = await self._rules.list_active()
        workloads = await self._store.get_technician_workloads(available_only=False)

        return {
            "active_rules": len(rules),
            "available_technicians": sum(1 for w in workloads if w.user.is_available),
            "technician_workload": [w.to_dict() for w in workloads],
        }

"""
SLA Application Services
========================

Application service for per-ticket SLA tracking.

- SLATracker: creates deadline state for new tickets, stamps the first
  response and the resolution, and sweeps every unresolved ticket for
  warnings, breaches and escalation
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from ticket_automation.config import NotificationType, SLAType
from ticket_automation.core import (
    IEntityStore,
    INotificationSink,
    IMessagingGateway,
    Ticket,
)
from ticket_automation.shared.infrastructure.logging import get_logger
from ticket_automation.sla.domain import SLAPolicy, TicketSLA, BusinessHoursCalculator

logger = get_logger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ========== Repository Interfaces (Dependency Inversion) ==========

class ISLAPolicyRepository(ABC):
    """Interface for SLA policy data access."""

    @abstractmethod
    async def find_active_for_priority(self, priority: str) -> Optional[SLAPolicy]:
        """Oldest active policy for the priority, if any."""

    @abstractmethod
    async def get(self, policy_id: str) -> Optional[SLAPolicy]:
        """Get policy by ID."""

    @abstractmethod
    async def list_all(self) -> List[SLAPolicy]:
        """All policies."""

    @abstractmethod
    async def create(self, policy: SLAPolicy) -> SLAPolicy:
        """Create new policy."""

    @abstractmethod
    async def update(self, policy: SLAPolicy) -> SLAPolicy:
        """Update existing policy."""

    @abstractmethod
    async def delete(self, policy_id: str) -> bool:
        """Delete policy; returns False if it did not exist."""


class ITicketSLARepository(ABC):
    """Interface for ticket SLA data access."""

    @abstractmethod
    async def get_by_ticket(self, ticket_id: str) -> Optional[TicketSLA]:
        """Get the SLA of a ticket."""

    @abstractmethod
    async def create(self, sla: TicketSLA) -> TicketSLA:
        """Persist a new ticket SLA and assign its ID."""

    @abstractmethod
    async def save(self, sla: TicketSLA) -> None:
        """Persist changes to an existing ticket SLA."""

    @abstractmethod
    async def list_active(self) -> List[TicketSLA]:
        """Every ticket SLA without a resolution."""

    @abstractmethod
    def savepoint(self) -> AbstractAsyncContextManager:
        """Isolation boundary; changes inside are discarded if it exits with an error."""

    @abstractmethod
    async def count_stats(self) -> Dict[str, int]:
        """
        Aggregate counts.

        Keys: active, on_track, at_risk, breached (active only),
        response_breaches, resolution_breaches, total, with_breach (all time)
        """


# ========== Application Services ==========

class SLATracker:
    """
    Tracks SLA deadlines per ticket.

    Every operation is idempotent so it can be retried: creation skips
    tickets that already have an SLA, milestones are stamped once and
    warnings and escalation fire at most once.
    """

    def __init__(
        self,
        store: IEntityStore,
        policies: ISLAPolicyRepository,
        slas: ITicketSLARepository,
        notifications: INotificationSink,
        messaging: IMessagingGateway,
        calculator: Optional[BusinessHoursCalculator] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self._store = store
        self._policies = policies
        self._slas = slas
        self._notifications = notifications
        self._messaging = messaging
        self._calculator = calculator or BusinessHoursCalculator()
        self._clock = clock

    # ========== Lifecycle ==========

    async def create_sla(self, ticket_id: str) -> Optional[TicketSLA]:
        """Start SLA tracking for a new ticket; None if no policy applies."""
        ticket = await self._store.get_ticket(ticket_id)
        if ticket is None:
            logger.warning("Ticket not found for SLA creation", extra={"ticket_id": ticket_id})
            return None

        existing = await self._slas.get_by_ticket(ticket_id)
        if existing is not None:
            logger.info("SLA already exists, skipping", extra={"ticket_id": ticket_id})
            return existing

        policy = await self._policies.find_active_for_priority(ticket.priority)
        if policy is None:
            logger.info("No SLA policy for priority", extra={"ticket_id": ticket_id, "priority": ticket.priority})
            return None

        now = self._clock()
        sla = await self._slas.create(TicketSLA(
            ticket_id=ticket.id,
            policy_id=policy.id,
            response_deadline=self._calculator.add_minutes(
                now, policy.response_time_minutes, policy.business_hours_only
            ),
            resolution_deadline=self._calculator.add_minutes(
                now, policy.resolution_time_minutes, policy.business_hours_only
            ),
            created_at=now,
        ))

        logger.info(
            "SLA created",
            extra={
                "ticket_id": ticket_id,
                "policy": policy.name,
                "response_deadline": sla.response_deadline.isoformat(),
                "resolution_deadline": sla.resolution_deadline.isoformat(),
            }
        )
        return sla

    async def record_first_response(self, ticket_id: str) -> Optional[TicketSLA]:
        sla = await self._slas.get_by_ticket(ticket_id)
        if sla is None or sla.first_response_at is not None:
            return sla

        # the sweep already notified and escalated this breach
        already_breached = sla.is_breached_on(SLAType.RESPONSE)
        if sla.record_first_response(self._clock()) and not already_breached:
            logger.warning("Response SLA breached", extra={"ticket_id": ticket_id})
            await self._handle_breach(sla, SLAType.RESPONSE)
        elif already_breached:
            logger.info("Late first response on breached SLA", extra={"ticket_id": ticket_id})
        else:
            logger.info("Response SLA met", extra={"ticket_id": ticket_id})

        await self._slas.save(sla)
        return sla

    async def record_resolution(self, ticket_id: str) -> Optional[TicketSLA]:
        sla = await self._slas.get_by_ticket(ticket_id)
        if sla is None or sla.resolved_at is not None:
            return sla

        already_breached = sla.is_breached_on(SLAType.RESOLUTION)
        if sla.record_resolution(self._clock()) and not already_breached:
            logger.warning("Resolution SLA breached", extra={"ticket_id": ticket_id})
            await self._handle_breach(sla, SLAType.RESOLUTION)
        elif already_breached:
            logger.info("Late resolution on breached SLA", extra={"ticket_id": ticket_id})
        else:
            logger.info("Resolution SLA met", extra={"ticket_id": ticket_id})

        await self._slas.save(sla)
        return sla

    # ========== Periodic sweep ==========

    async def check_all_slas(self) -> Dict[str, int]:
        """
        Check every unresolved SLA for warnings and breaches.

        Each record is checked inside its own savepoint; a failure rolls
        back that record only and the sweep carries on.

        Returns:
            Counts of records checked, breached, warned and failed
        """
        now = self._clock()
        slas = await self._slas.list_active()
        logger.info("Checking active SLAs", extra={"count": len(slas)})

        summary = {"checked": 0, "breached": 0, "warned": 0, "failed": 0}
        policies: Dict[str, Optional[SLAPolicy]] = {}

        for sla in slas:
            try:
                async with self._slas.savepoint():
                    if sla.policy_id not in policies:
                        policies[sla.policy_id] = await self._policies.get(sla.policy_id)
                    policy = policies[sla.policy_id]
                    if policy is None:
                        logger.warning(
                            "SLA policy missing, skipping",
                            extra={"ticket_id": sla.ticket_id, "policy_id": sla.policy_id}
                        )
                        continue

                    breached, warned = await self._check_single(sla, policy, now)
                    if breached or warned:
                        await self._slas.save(sla)
            except Exception as e:
                summary["failed"] += 1
                logger.error(
                    "SLA check failed",
                    extra={"ticket_id": sla.ticket_id, "sla_id": sla.id, "error": str(e)},
                    exc_info=True,
                )
                continue

            summary["checked"] += 1
            summary["breached"] += breached
            summary["warned"] += warned

        logger.info("SLA check complete", extra=summary)
        return summary

    async def _check_single(self, sla: TicketSLA, policy: SLAPolicy, now: datetime):
        breached = warned = 0

        for sla_type in (SLAType.RESPONSE, SLAType.RESOLUTION):
            if not sla.is_open_on(sla_type):
                continue

            remaining = sla.remaining(sla_type, now)
            if remaining.total_seconds() <= 0:
                sla.mark_breached(sla_type)
                logger.warning("SLA breached", extra={"ticket_id": sla.ticket_id, "sla_type": sla_type})
                await self._handle_breach(sla, sla_type)
                breached += 1
            elif remaining <= policy.warning_window and not sla.warning_sent_on(sla_type):
                sla.mark_warned(sla_type)
                await self._send_warning(sla, sla_type, remaining.total_seconds())
                warned += 1

        return breached, warned

    # ========== Notifications ==========

    async def _handle_breach(self, sla: TicketSLA, sla_type: str) -> None:
        """Notify the assignee and creator; escalate once if configured."""
        ticket = await self._store.get_ticket(sla.ticket_id)
        if ticket is None:
            logger.warning("Ticket missing for SLA breach", extra={"ticket_id": sla.ticket_id})
            return

        breach_message = f"⚠️ {sla_type.capitalize()} SLA breached for ticket #{ticket.number}"

        if ticket.assigned_to_id:
            await self._notifications.notify(
                ticket.assigned_to_id,
                NotificationType.SLA_BREACH,
                "SLA Breach Alert",
                breach_message,
                ticket.id,
            )
            await self._text(ticket.assigned_to_id, breach_message)

        await self._notifications.notify(
            ticket.created_by_id,
            NotificationType.SLA_BREACH,
            "SLA Status Update",
            f"Your ticket #{ticket.number} has exceeded the {sla_type} time limit. "
            f"We're working on it with high priority.",
            ticket.id,
        )

        policy = await self._policies.get(sla.policy_id)
        target = policy.escalation_target if policy else None
        if target and not sla.escalated:
            await self._escalate(sla, ticket, target)

    async def _escalate(self, sla: TicketSLA, ticket: Ticket, target_user_id: str) -> None:
        sla.mark_escalated(self._clock())
        message = f"Ticket #{ticket.number} has been escalated due to SLA breach"

        await self._notifications.notify(
            target_user_id,
            NotificationType.SLA_ESCALATION,
            "Ticket Escalated - SLA Breach",
            message,
            ticket.id,
        )
        await self._text(target_user_id, f"🚨 {message}")
        logger.warning("Ticket escalated", extra={"ticket_id": ticket.id, "escalated_to": target_user_id})

    async def _send_warning(self, sla: TicketSLA, sla_type: str, seconds_left: float) -> None:
        ticket = await self._store.get_ticket(sla.ticket_id)
        if ticket is None or not ticket.assigned_to_id:
            return

        minutes = int(seconds_left // 60)
        await self._notifications.notify(
            ticket.assigned_to_id,
            NotificationType.SLA_WARNING,
            "SLA Warning",
            f"⏰ {sla_type.capitalize()} SLA approaching for ticket #{ticket.number}. "
            f"{minutes} minutes remaining.",
            ticket.id,
        )
        logger.info(
            "SLA warning sent",
            extra={"ticket_id": ticket.id, "sla_type": sla_type, "minutes_left": minutes}
        )

    async def _text(self, user_id: str, message: str) -> None:
        """WhatsApp copy of an alert for users who opted in."""
        user = await self._store.get_user(user_id)
        if user is not None and user.can_receive_whatsapp:
            await self._messaging.send_text(user.phone, message)

    # ========== Reporting ==========

    async def get_sla_stats(self) -> Dict[str, object]:
        counts = await self._slas.count_stats()

        total = counts["total"]
        if total:
            compliance_rate = round((total - counts["with_breach"]) / total * 100, 1)
        else:
            compliance_rate = 100.0

        return {
            "total": counts["active"],
            "on_track": counts["on_track"],
            "at_risk": counts["at_risk"],
            "breached": counts["breached"],
            "response_breaches": counts["response_breaches"],
            "resolution_breaches": counts["resolution_breaches"],
            "compliance_rate": compliance_rate,
        }

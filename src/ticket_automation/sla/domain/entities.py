"""
SLA Domain Entities
===================

Pure Python domain entities for SLA tracking.

A TicketSLA tracks two independent deadlines (first response and
resolution). Its overall status only ever moves towards more severe:
on_track -> at_risk -> breached.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from ticket_automation.config import SLAStatus, SLAType
from ticket_automation.core.exceptions import DomainException

STATUS_SEVERITY = {
    SLAStatus.ON_TRACK: 0,
    SLAStatus.AT_RISK: 1,
    SLAStatus.BREACHED: 2,
}


@dataclass
class SLAPolicy:
    """Response and resolution budgets for one ticket priority."""

    id: str
    name: str
    priority: str
    response_time_minutes: int
    resolution_time_minutes: int
    business_hours_only: bool = True
    notify_before_minutes: int = 30
    escalation_enabled: bool = True
    escalation_user_id: Optional[str] = None
    is_active: bool = True
    description: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def warning_window(self) -> timedelta:
        return timedelta(minutes=self.notify_before_minutes)

    @property
    def escalation_target(self) -> Optional[str]:
        """User to escalate breaches to, if escalation is configured."""
        if self.escalation_enabled and self.escalation_user_id:
            return self.escalation_user_id
        return None


@dataclass
class TicketSLA:
    """
    Deadline state of one ticket.

    Milestones are stamped once; warnings and escalation happen at most
    once each.
    """

    ticket_id: str
    policy_id: str
    response_deadline: datetime
    resolution_deadline: datetime
    id: Optional[str] = None
    status: str = SLAStatus.ON_TRACK
    first_response_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    response_breached: bool = False
    resolution_breached: bool = False
    response_warning_sent: bool = False
    resolution_warning_sent: bool = False
    warnings_sent: int = 0
    escalated: bool = False
    escalated_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_active(self) -> bool:
        return self.resolved_at is None

    @property
    def is_breached(self) -> bool:
        return self.response_breached or self.resolution_breached

    def _raise_status(self, status: str) -> None:
        if STATUS_SEVERITY[status] > STATUS_SEVERITY[self.status]:
            self.status = status

    def deadline(self, sla_type: str) -> datetime:
        if sla_type == SLAType.RESPONSE:
            return self.response_deadline
        return self.resolution_deadline

    def remaining(self, sla_type: str, now: datetime) -> timedelta:
        return self.deadline(sla_type) - now

    def is_breached_on(self, sla_type: str) -> bool:
        if sla_type == SLAType.RESPONSE:
            return self.response_breached
        return self.resolution_breached

    def warning_sent_on(self, sla_type: str) -> bool:
        if sla_type == SLAType.RESPONSE:
            return self.response_warning_sent
        return self.resolution_warning_sent

    def is_open_on(self, sla_type: str) -> bool:
        """True while the milestone is outstanding and not yet breached."""
        if sla_type == SLAType.RESPONSE:
            return self.first_response_at is None and not self.response_breached
        return self.resolved_at is None and not self.resolution_breached

    def record_first_response(self, at: datetime) -> bool:
        """Stamp the first response; returns True if it came too late."""
        if self.first_response_at is not None:
            raise DomainException(
                f"First response already recorded for ticket {self.ticket_id}",
                {"ticket_id": self.ticket_id}
            )
        self.first_response_at = at
        self.response_breached = at > self.response_deadline
        if self.response_breached:
            self._raise_status(SLAStatus.BREACHED)
        return self.response_breached

    def record_resolution(self, at: datetime) -> bool:
        """Stamp the resolution; returns True if it came too late."""
        if self.resolved_at is not None:
            raise DomainException(
                f"Resolution already recorded for ticket {self.ticket_id}",
                {"ticket_id": self.ticket_id}
            )
        self.resolved_at = at
        self.resolution_breached = at > self.resolution_deadline
        if self.resolution_breached:
            self._raise_status(SLAStatus.BREACHED)
        return self.resolution_breached

    def mark_breached(self, sla_type: str) -> None:
        if sla_type == SLAType.RESPONSE:
            self.response_breached = True
        else:
            self.resolution_breached = True
        self._raise_status(SLAStatus.BREACHED)

    def mark_warned(self, sla_type: str) -> None:
        if self.warning_sent_on(sla_type):
            raise DomainException(
                f"{sla_type} warning already sent for ticket {self.ticket_id}",
                {"ticket_id": self.ticket_id, "sla_type": sla_type}
            )
        if sla_type == SLAType.RESPONSE:
            self.response_warning_sent = True
        else:
            self.resolution_warning_sent = True
        self.warnings_sent += 1
        self._raise_status(SLAStatus.AT_RISK)

    def mark_escalated(self, at: datetime) -> None:
        if self.escalated:
            raise DomainException(
                f"Ticket {self.ticket_id} already escalated",
                {"ticket_id": self.ticket_id}
            )
        self.escalated = True
        self.escalated_at = at

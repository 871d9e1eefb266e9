"""
SLA Infrastructure Models
=========================

SQLAlchemy ORM models for SLA policies and per-ticket SLA state.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import String, Boolean, Integer, Text, Uuid, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from ticket_automation.infrastructure.database import Base, UTCDateTime
from ticket_automation.config import Priority, SLAStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SLAPolicyModel(Base):
    """Maps to the 'sla_policies' table."""
    __tablename__ = "sla_policies"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    priority: Mapped[str] = mapped_column(String(50), nullable=False, default=Priority.MEDIUM, index=True)

    response_time_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    resolution_time_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    business_hours_only: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notify_before_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=30)

    escalation_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    escalation_user_id: Mapped[Optional[UUID]] = mapped_column(ForeignKey("users.id"), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=_utcnow, onupdate=_utcnow
    )


class TicketSLAModel(Base):
    """
    Maps to the 'ticket_slas' table.

    One row per ticket at most (unique ticket_id).
    """
    __tablename__ = "ticket_slas"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    ticket_id: Mapped[UUID] = mapped_column(
        ForeignKey("tickets.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    policy_id: Mapped[UUID] = mapped_column(ForeignKey("sla_policies.id"), nullable=False)

    # Deadlines
    response_deadline: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    resolution_deadline: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    # Milestones
    first_response_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True, index=True)

    # State
    status: Mapped[str] = mapped_column(String(50), nullable=False, default=SLAStatus.ON_TRACK, index=True)
    response_breached: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    resolution_breached: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    response_warning_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    resolution_warning_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    warnings_sent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Escalation
    escalated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    escalated_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=_utcnow, onupdate=_utcnow
    )

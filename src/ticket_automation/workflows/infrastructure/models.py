"""
Workflow Infrastructure Models
==============================

SQLAlchemy ORM models for workflow templates and their execution log.
Conditions, actions and results are stored as JSON documents.
"""

from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, String, Boolean, Integer, Text, Uuid, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ticket_automation.infrastructure.database import Base, UTCDateTime
from ticket_automation.config import ExecutionStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WorkflowTemplateModel(Base):
    """Maps to the 'workflow_templates' table."""
    __tablename__ = "workflow_templates"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    trigger: Mapped[str] = mapped_column(String(50), nullable=False)
    conditions: Mapped[Any] = mapped_column(JSON, nullable=False, default=list)
    actions: Mapped[Any] = mapped_column(JSON, nullable=False, default=list)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        Index("ix_workflow_templates_lookup", "entity_type", "trigger", "is_active"),
    )


class WorkflowExecutionModel(Base):
    """Maps to the 'workflow_executions' table."""
    __tablename__ = "workflow_executions"
    __table_args__ = (
        UniqueConstraint("workflow_id", "event_id", name="uq_workflow_executions_workflow_event"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    workflow_id: Mapped[UUID] = mapped_column(
        ForeignKey("workflow_templates.id", ondelete="CASCADE"), nullable=False, index=True
    )
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    event_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    status: Mapped[str] = mapped_column(String(50), nullable=False, default=ExecutionStatus.RUNNING, index=True)
    result: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    executed_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

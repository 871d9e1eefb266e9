"""
Assignment Infrastructure Models
================================

SQLAlchemy ORM model for auto-assignment rules.
"""

from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, String, Boolean, Integer, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from ticket_automation.infrastructure.database import Base, UTCDateTime


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AssignmentRuleModel(Base):
    """Maps to the 'assignment_rules' table."""
    __tablename__ = "assignment_rules"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    conditions: Mapped[Any] = mapped_column(JSON, nullable=False, default=list)

    assignment_type: Mapped[str] = mapped_column(String(50), nullable=False)
    target_user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    target_user_ids: Mapped[Any] = mapped_column(JSON, nullable=False, default=list)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=_utcnow, onupdate=_utcnow
    )

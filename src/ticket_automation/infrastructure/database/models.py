"""
Application Entity Models
=========================

SQLAlchemy ORM models for the records the automation core reads and
mutates but does not own: users, assets, tickets, comments and in-app
notifications.
"""

from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID, uuid4

from sqlalchemy import String, Boolean, Integer, Text, Uuid, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ticket_automation.infrastructure.database import Base, UTCDateTime
from ticket_automation.config import Priority, TicketStatus, UserRole


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserModel(Base):
    """Maps to the 'users' table."""
    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    role: Mapped[str] = mapped_column(String(50), nullable=False, default=UserRole.USER, index=True)
    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    department: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    whatsapp_notifications: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)


class AssetModel(Base):
    """Maps to the 'assets' table."""
    __tablename__ = "assets"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    asset_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    office_location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)


class TicketModel(Base):
    """Maps to the 'tickets' table."""
    __tablename__ = "tickets"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    number: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(String(50), nullable=False, default=TicketStatus.OPEN, index=True)
    priority: Mapped[str] = mapped_column(String(50), nullable=False, default=Priority.MEDIUM)

    created_by_id: Mapped[UUID] = mapped_column(ForeignKey("users.id"), nullable=False)
    assigned_to_id: Mapped[Optional[UUID]] = mapped_column(ForeignKey("users.id"), nullable=True, index=True)
    asset_id: Mapped[Optional[UUID]] = mapped_column(ForeignKey("assets.id"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=_utcnow, onupdate=_utcnow
    )

    created_by: Mapped[UserModel] = relationship(foreign_keys=[created_by_id], lazy="selectin")
    assigned_to: Mapped[Optional[UserModel]] = relationship(foreign_keys=[assigned_to_id], lazy="selectin")
    asset: Mapped[Optional[AssetModel]] = relationship(lazy="selectin")
    comments: Mapped[List["CommentModel"]] = relationship(back_populates="ticket", lazy="noload")


class CommentModel(Base):
    """Maps to the 'comments' table."""
    __tablename__ = "comments"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    ticket_id: Mapped[UUID] = mapped_column(ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False)
    author_id: Mapped[UUID] = mapped_column(ForeignKey("users.id"), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    content_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)

    ticket: Mapped[TicketModel] = relationship(back_populates="comments")

    __table_args__ = (
        Index("ix_comments_ticket_hash", "ticket_id", "content_hash"),
    )


class NotificationModel(Base):
    """Maps to the 'notifications' table."""
    __tablename__ = "notifications"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    ticket_id: Mapped[Optional[UUID]] = mapped_column(ForeignKey("tickets.id", ondelete="CASCADE"), nullable=True)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)

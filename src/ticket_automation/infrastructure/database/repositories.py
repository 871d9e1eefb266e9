"""
Entity Store and Notification Sink
==================================

SQLAlchemy implementations of the collaborator ports the automation
engines depend on.

Database errors are re-raised as RepositoryException so engines can
report them as structured failures instead of crashing.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ticket_automation.config import UserRole, ACTIVE_TICKET_STATUSES
from ticket_automation.core import (
    IEntityStore,
    INotificationSink,
    RepositoryException,
    ResourceNotFoundException,
    User,
    Asset,
    Ticket,
    TechnicianWorkload,
)
from ticket_automation.infrastructure.database.models import (
    UserModel,
    AssetModel,
    TicketModel,
    CommentModel,
    NotificationModel,
)
from ticket_automation.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

UPDATABLE_TICKET_FIELDS = {"status", "priority", "assigned_to_id", "title", "description"}


def to_uuid(value: Optional[str]) -> Optional[UUID]:
    """Parse an ID string, returning None if it is not a UUID."""
    if value is None:
        return None
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


def _id(value: Optional[UUID]) -> Optional[str]:
    return str(value) if value is not None else None


@asynccontextmanager
async def repository_errors(operation: str):
    """Translate SQLAlchemy errors into RepositoryException."""
    try:
        yield
    except SQLAlchemyError as e:
        logger.error("Database operation failed", extra={"operation": operation, "error": str(e)})
        raise RepositoryException(f"{operation} failed: {e}") from e


@asynccontextmanager
async def nested_transaction(session: AsyncSession) -> AsyncIterator[None]:
    """
    SAVEPOINT around the block.

    Pending changes are flushed before the savepoint is released, so a
    constraint violation rolls back with it and leaves the enclosing
    transaction usable.
    """
    async with session.begin_nested():
        yield
        await session.flush()


def user_from_model(model: UserModel) -> User:
    return User(
        id=str(model.id),
        name=model.name,
        email=model.email,
        role=model.role,
        is_available=model.is_available,
        department=model.department,
        location=model.location,
        phone=model.phone,
        whatsapp_notifications=model.whatsapp_notifications,
        created_at=model.created_at,
    )


def asset_from_model(model: AssetModel) -> Asset:
    return Asset(
        id=str(model.id),
        name=model.name,
        asset_type=model.asset_type,
        office_location=model.office_location,
    )


def ticket_from_model(model: TicketModel) -> Ticket:
    return Ticket(
        id=str(model.id),
        number=model.number,
        title=model.title,
        description=model.description,
        status=model.status,
        priority=model.priority,
        created_by_id=str(model.created_by_id),
        created_at=model.created_at,
        assigned_to_id=_id(model.assigned_to_id),
        asset_id=_id(model.asset_id),
        asset=asset_from_model(model.asset) if model.asset else None,
        created_by=user_from_model(model.created_by) if model.created_by else None,
    )


class SQLAlchemyEntityStore(IEntityStore):
    """
    SQLAlchemy implementation of the entity store.

    Writes are flushed immediately; the surrounding unit of work commits.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    def savepoint(self):
        return nested_transaction(self._session)

    async def _get_ticket_model(self, ticket_id: str) -> Optional[TicketModel]:
        ticket_uuid = to_uuid(ticket_id)
        if ticket_uuid is None:
            return None
        stmt = select(TicketModel).where(TicketModel.id == ticket_uuid)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_ticket(self, ticket_id: str) -> Optional[Ticket]:
        async with repository_errors("get_ticket"):
            model = await self._get_ticket_model(ticket_id)
        return ticket_from_model(model) if model else None

    async def update_ticket(self, ticket_id: str, **fields) -> Ticket:
        unknown = set(fields) - UPDATABLE_TICKET_FIELDS
        if unknown:
            raise RepositoryException(f"Cannot update ticket fields: {sorted(unknown)}")

        async with repository_errors("update_ticket"):
            model = await self._get_ticket_model(ticket_id)
            if model is None:
                raise ResourceNotFoundException("Ticket", ticket_id)

            for name, value in fields.items():
                if name == "assigned_to_id":
                    value = to_uuid(value)
                setattr(model, name, value)

            await self._session.flush()
            await self._session.refresh(model)

        return ticket_from_model(model)

    async def get_user(self, user_id: str) -> Optional[User]:
        user_uuid = to_uuid(user_id)
        if user_uuid is None:
            return None
        async with repository_errors("get_user"):
            model = await self._session.get(UserModel, user_uuid)
        return user_from_model(model) if model else None

    async def get_users(self, user_ids: List[str]) -> List[User]:
        uuids = [u for u in (to_uuid(i) for i in user_ids) if u is not None]
        if not uuids:
            return []
        async with repository_errors("get_users"):
            stmt = select(UserModel).where(UserModel.id.in_(uuids))
            result = await self._session.execute(stmt)
            models = result.scalars().all()
        return [user_from_model(m) for m in models]

    async def get_system_user(self) -> Optional[User]:
        async with repository_errors("get_system_user"):
            stmt = (
                select(UserModel)
                .where(UserModel.role == UserRole.ADMIN)
                .order_by(UserModel.created_at.asc(), UserModel.id.asc())
                .limit(1)
            )
            result = await self._session.execute(stmt)
            model = result.scalar_one_or_none()
        return user_from_model(model) if model else None

    async def get_technician_workloads(
        self,
        available_only: bool = True,
        location: Optional[str] = None
    ) -> List[TechnicianWorkload]:
        active = (
            select(
                TicketModel.assigned_to_id.label("user_id"),
                func.count(TicketModel.id).label("active_tickets"),
            )
            .where(TicketModel.status.in_(ACTIVE_TICKET_STATUSES))
            .where(TicketModel.assigned_to_id.is_not(None))
            .group_by(TicketModel.assigned_to_id)
            .subquery()
        )

        stmt = (
            select(UserModel, func.coalesce(active.c.active_tickets, 0))
            .outerjoin(active, active.c.user_id == UserModel.id)
            .where(UserModel.role == UserRole.TECHNICIAN)
        )
        if available_only:
            stmt = stmt.where(UserModel.is_available.is_(True))
        if location is not None:
            stmt = stmt.where(UserModel.location == location)
        stmt = stmt.order_by(UserModel.created_at.asc(), UserModel.id.asc())

        async with repository_errors("get_technician_workloads"):
            result = await self._session.execute(stmt)
            rows = result.all()

        return [
            TechnicianWorkload(user=user_from_model(model), active_tickets=int(count))
            for model, count in rows
        ]

    async def get_last_assignee(self, user_ids: List[str]) -> Optional[str]:
        uuids = [u for u in (to_uuid(i) for i in user_ids) if u is not None]
        if not uuids:
            return None
        async with repository_errors("get_last_assignee"):
            stmt = (
                select(TicketModel.assigned_to_id)
                .where(TicketModel.assigned_to_id.in_(uuids))
                .order_by(TicketModel.created_at.desc(), TicketModel.id.desc())
                .limit(1)
            )
            result = await self._session.execute(stmt)
            assignee = result.scalar_one_or_none()
        return _id(assignee)

    async def add_comment(
        self,
        ticket_id: str,
        author_id: str,
        content: str,
        content_hash: str
    ) -> Tuple[str, bool]:
        ticket_uuid = to_uuid(ticket_id)
        author_uuid = to_uuid(author_id)
        if ticket_uuid is None:
            raise ResourceNotFoundException("Ticket", ticket_id)
        if author_uuid is None:
            raise ResourceNotFoundException("User", author_id)

        async with repository_errors("add_comment"):
            stmt = select(CommentModel.id).where(
                CommentModel.ticket_id == ticket_uuid,
                CommentModel.content_hash == content_hash,
            ).limit(1)
            existing = (await self._session.execute(stmt)).scalar_one_or_none()
            if existing is not None:
                return str(existing), False

            model = CommentModel(
                ticket_id=ticket_uuid,
                author_id=author_uuid,
                content=content,
                content_hash=content_hash,
            )
            self._session.add(model)
            await self._session.flush()

        return str(model.id), True


class SQLAlchemyNotificationSink(INotificationSink):
    """
    In-app notification inbox backed by the 'notifications' table.

    An identical notification (type, title, user, ticket) created within
    the de-duplication window is suppressed.
    """

    def __init__(self, session: AsyncSession, dedupe_seconds: float = 5.0):
        self._session = session
        self._dedupe_window = timedelta(seconds=dedupe_seconds)

    async def notify(
        self,
        user_id: str,
        notification_type: str,
        title: str,
        message: str,
        ticket_id: Optional[str] = None
    ) -> bool:
        user_uuid = to_uuid(user_id)
        if user_uuid is None:
            raise ResourceNotFoundException("User", user_id)
        ticket_uuid = to_uuid(ticket_id)

        async with repository_errors("notify"):
            since = datetime.now(timezone.utc) - self._dedupe_window
            stmt = select(NotificationModel.id).where(
                NotificationModel.type == notification_type,
                NotificationModel.title == title,
                NotificationModel.user_id == user_uuid,
                NotificationModel.created_at >= since,
            )
            if ticket_uuid is None:
                stmt = stmt.where(NotificationModel.ticket_id.is_(None))
            else:
                stmt = stmt.where(NotificationModel.ticket_id == ticket_uuid)

            duplicate = (await self._session.execute(stmt.limit(1))).scalar_one_or_none()
            if duplicate is not None:
                logger.info(
                    "Duplicate notification suppressed",
                    extra={"user_id": user_id, "type": notification_type, "ticket_id": ticket_id}
                )
                return False

            self._session.add(NotificationModel(
                user_id=user_uuid,
                ticket_id=ticket_uuid,
                type=notification_type,
                title=title,
                message=message,
            ))
            await self._session.flush()

        logger.info(
            "Notification created",
            extra={"user_id": user_id, "type": notification_type, "ticket_id": ticket_id}
        )
        return True

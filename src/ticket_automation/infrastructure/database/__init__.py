"""
Database Infrastructure
=======================

Async PostgreSQL access (SQLAlchemy 2.0 + asyncpg).

Two ways to get a session, both committing on success and rolling back
on error:

- get_session: FastAPI dependency for the admin API
- get_session_context: unit of work for automation tasks and the SLA
  sweep, which run outside any request
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator, AsyncIterator, Optional

from sqlalchemy import DateTime, MetaData
from sqlalchemy.types import TypeDecorator
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from ticket_automation.config import Settings, settings as default_settings
from ticket_automation.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

# Stable constraint names keep generated migrations reproducible
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

# Modules whose models make up the schema
MODEL_MODULES = (
    "ticket_automation.infrastructure.database.models",
    "ticket_automation.workflows.infrastructure.models",
    "ticket_automation.assignment.infrastructure.models",
    "ticket_automation.sla.infrastructure.models",
)


class Base(DeclarativeBase):
    """Declarative base shared by every bounded context."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware timestamp column.

    Values are stored in UTC and always come back aware, also on backends
    without a native timezone type (SQLite).
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


_engine: Optional[AsyncEngine] = None
_session_maker: Optional[async_sessionmaker[AsyncSession]] = None


def get_engine() -> AsyncEngine:
    if _engine is None:
        raise RuntimeError("Database engine not initialized. Call init_database() first.")
    return _engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    if _session_maker is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return _session_maker


def asyncpg_url(database_url: str) -> str:
    """asyncpg takes `ssl=` where libpq URLs carry `sslmode=`."""
    return database_url.replace("sslmode=", "ssl=")


def init_database(config: Settings = default_settings) -> AsyncEngine:
    """
    Create the engine and session factory.

    Called once from the application lifespan. Development runs without a
    connection pool so that reloads never leave connections behind.
    """
    global _engine, _session_maker

    engine_options = {"echo": config.debug, "pool_pre_ping": True}
    if config.environment == "development":
        engine_options["poolclass"] = NullPool
    else:
        engine_options["pool_size"] = config.db_pool_size
        engine_options["max_overflow"] = config.db_max_overflow

    _engine = create_async_engine(asyncpg_url(config.database_url), **engine_options)
    _session_maker = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    logger.info(
        "Database initialized",
        extra={"pooled": "poolclass" not in engine_options, "environment": config.environment}
    )
    return _engine


async def close_database() -> None:
    global _engine, _session_maker

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_maker = None


@asynccontextmanager
async def get_session_context() -> AsyncIterator[AsyncSession]:
    """
    One unit of work: commit when the block succeeds, roll back when it
    raises.

    Usage:
        async with get_session_context() as session:
            ...
    """
    async with get_session_maker()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency wrapping the request in one unit of work."""
    async with get_session_context() as session:
        yield session


async def create_tables() -> None:
    """
    Create all database tables.

    Development convenience; production schemas are managed by migrations.
    """
    import importlib

    for module in MODEL_MODULES:
        importlib.import_module(module)

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

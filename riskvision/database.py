"""Async SQLAlchemy database engine and session management."""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from riskvision.config import settings

_is_postgres = "postgresql" in settings.database_url
_is_sqlite = settings.database_url.startswith("sqlite")
_is_supabase_pooler = "pooler.supabase.com" in settings.database_url and "asyncpg" in settings.database_url

_engine_kwargs: dict = {"echo": False}
if _is_postgres:
    _engine_kwargs.update({
        "pool_size": 10,
        "max_overflow": 20,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
    })

if _is_supabase_pooler:
    # PgBouncer in transaction mode: no pooling on our side and unique
    # prepared statement names.
    for key in ("pool_size", "max_overflow", "pool_pre_ping", "pool_recycle"):
        _engine_kwargs.pop(key, None)
    _engine_kwargs["poolclass"] = NullPool
    _engine_kwargs["connect_args"] = {
        "prepared_statement_name_func": lambda: f"__asyncpg_{uuid.uuid4()}__",
        "statement_cache_size": 0,
    }

engine = create_async_engine(settings.database_url, **_engine_kwargs)
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
logger = logging.getLogger("riskvision.database")


def enable_sqlite_foreign_keys(sync_engine) -> None:
    """SQLite ignores ON DELETE CASCADE unless foreign keys are switched on per connection."""

    @event.listens_for(sync_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):  # noqa: ARG001
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


if _is_sqlite:
    enable_sqlite_foreign_keys(engine.sync_engine)


class Base(DeclarativeBase):
    pass


async def init_db() -> None:
    """Create all tables when AUTO_CREATE_SCHEMA is enabled."""
    if not settings.auto_create_schema:
        logger.info("Skipping Base.metadata.create_all (AUTO_CREATE_SCHEMA=false)")
        return

    # Ensure model modules are imported so SQLAlchemy metadata is populated.
    from riskvision.models import user, project, risk  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_session() -> AsyncSession:  # type: ignore[misc]
    """Dependency yielding an async DB session."""
    async with async_session() as session:
        yield session

from __future__ import annotations

import asyncio
from logging.config import fileConfig
from uuid import uuid4

from alembic import context
from sqlalchemy import pool
from sqlalchemy.ext.asyncio import async_engine_from_config

from riskvision.config import settings
from riskvision.database import Base
from riskvision.models import project, risk, user  # noqa: F401

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _database_url() -> str:
    """RiskVision's DATABASE_URL first, then ``sqlalchemy.url`` from alembic.ini."""
    for candidate in (settings.database_url, config.get_main_option("sqlalchemy.url", "")):
        if candidate and candidate.strip():
            return candidate.strip()
    raise RuntimeError("DATABASE_URL is not set; cannot run RiskVision migrations.")


def _configure(url: str, **kwargs) -> None:
    # SQLite cannot ALTER most constraints in place.
    context.configure(
        target_metadata=target_metadata,
        compare_type=True,
        render_as_batch=url.startswith("sqlite"),
        **kwargs,
    )


def run_migrations_offline() -> None:
    url = _database_url()
    _configure(url, url=url, literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    url = _database_url()
    section = config.get_section(config.config_ini_section, {})
    section["sqlalchemy.url"] = url

    connect_args = {}
    if url.startswith("postgresql+asyncpg://"):
        # Unique statement names keep pgbouncer-style poolers happy.
        connect_args["prepared_statement_name_func"] = lambda: f"__riskvision_{uuid4()}__"

    engine = async_engine_from_config(
        section, prefix="sqlalchemy.", poolclass=pool.NullPool, connect_args=connect_args
    )

    def _run(connection) -> None:
        _configure(url, connection=connection)
        with context.begin_transaction():
            context.run_migrations()

    async with engine.connect() as connection:
        await connection.run_sync(_run)
    await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())

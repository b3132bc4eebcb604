"""Alembic environment for the practice schema.

The database URL comes from the application settings (``DATABASE_URL`` in
the environment or ``.env``), so migrations always target the same database
as the API.
"""

from __future__ import annotations

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool

from app.core.config import settings
from app.core.db import build_engine
from app.infrastructure.db import models  # noqa: F401  registers every table
from app.infrastructure.db.base import Base

if context.config.config_file_name is not None:
    fileConfig(context.config.config_file_name)

MIGRATION_OPTIONS = {"target_metadata": Base.metadata, "compare_type": True}


def _migrate(connection=None) -> None:
    if connection is None:
        context.configure(
            url=settings.DATABASE_URL,
            literal_binds=True,
            dialect_opts={"paramstyle": "named"},
            **MIGRATION_OPTIONS,
        )
    else:
        context.configure(connection=connection, **MIGRATION_OPTIONS)
    with context.begin_transaction():
        context.run_migrations()


async def _migrate_online() -> None:
    engine = build_engine(poolclass=pool.NullPool)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_migrate)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    _migrate()
else:
    asyncio.run(_migrate_online())

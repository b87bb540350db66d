"""Migration environment for the AI engine schema.

The URL comes from juris settings, never from alembic.ini, and is always
driven through asyncpg. Reflection learns the pgvector ``vector`` type so
autogenerate can compare embedding columns.
"""

import asyncio
import os
from logging.config import fileConfig

from pgvector.sqlalchemy import Vector
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from alembic import context
import juris.models  # noqa: F401  registers every table on Base.metadata
from juris.core.config import settings
from juris.models.base import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

ASYNC_SCHEMES = {
    "postgresql://": "postgresql+asyncpg://",
    "postgres://": "postgresql+asyncpg://",
}


def database_url() -> str:
    if settings.DATABASE_URL is None:
        raise RuntimeError("DATABASE_URL must be set to run AI engine migrations")

    url = str(settings.DATABASE_URL)
    for prefix, replacement in ASYNC_SCHEMES.items():
        if url.startswith(prefix):
            return replacement + url[len(prefix) :]
    return url


def guard_protected_database() -> None:
    """Refuse to touch a production database unless the operator opts in.

    Set ``CONFIRM_PRODUCTION_MIGRATION=true`` alongside
    ``ENVIRONMENT=production`` to proceed.
    """
    if os.getenv("ENVIRONMENT", "").lower() != "production":
        return
    if os.getenv("CONFIRM_PRODUCTION_MIGRATION", "").lower() != "true":
        raise RuntimeError(
            "Refusing to migrate the production AI schema; "
            "export CONFIRM_PRODUCTION_MIGRATION=true to continue"
        )


def configure_context(**options) -> None:
    context.configure(
        target_metadata=target_metadata,
        compare_type=True,
        compare_server_default=True,
        **options,
    )


def run_migrations_offline() -> None:
    """Emit the migration SQL to stdout without connecting."""
    configure_context(
        url=database_url(),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def apply_on(connection: Connection) -> None:
    connection.dialect.ischema_names["vector"] = Vector
    configure_context(connection=connection)
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    guard_protected_database()

    section = config.get_section(config.config_ini_section) or {}
    section["sqlalchemy.url"] = database_url()
    engine = async_engine_from_config(
        section, prefix="sqlalchemy.", poolclass=pool.NullPool
    )
    try:
        async with engine.connect() as connection:
            await connection.run_sync(apply_on)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())

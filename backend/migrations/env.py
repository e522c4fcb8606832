"""
Alembic environment for the storefront checkout schema.

Migrations run against the database named by ``APP_DATABASE_URL`` (falling
back to ``sqlalchemy.url`` in alembic.ini). Online mode drives an asyncpg
engine through ``connection.run_sync``; offline mode renders SQL only.
"""

import asyncio
from logging.config import fileConfig
from typing import Optional

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from storefront.core.config import get_settings
from storefront.core.logging import get_logger
from storefront.database.base import Base
from storefront.database.connection import async_database_url

import storefront.database.models  # noqa: F401

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

logger = get_logger(__name__)
target_metadata = Base.metadata


def _migration_url() -> Optional[str]:
    settings = get_settings()
    if settings.database_url:
        return async_database_url(settings.database_url)
    return config.get_main_option("sqlalchemy.url")


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=target_metadata,
        compare_type=True,
        compare_server_default=True,
        **kwargs,
    )


def run_migrations_offline(url: str) -> None:
    """Emit migration SQL to the script output without a DBAPI."""
    _configure(url=url, literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    _configure(connection=connection, transaction_per_migration=True)
    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations(url: str) -> None:
    section = config.get_section(config.config_ini_section, {})
    section["sqlalchemy.url"] = url
    connectable = async_engine_from_config(
        section,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    try:
        async with connectable.connect() as connection:
            await connection.run_sync(do_run_migrations)
    finally:
        await connectable.dispose()


def main() -> None:
    url = _migration_url()
    if not url:
        raise ValueError("Database URL is required for migrations")

    mode = "offline" if context.is_offline_mode() else "online"
    logger.info(
        "Running checkout schema migrations",
        mode=mode,
        driver=url.split("://")[0],
    )
    try:
        if mode == "offline":
            run_migrations_offline(url)
        else:
            asyncio.run(run_async_migrations(url))
    except Exception as e:
        logger.error(
            "Migration failed",
            mode=mode,
            error=str(e),
            error_type=type(e).__name__,
        )
        raise
    logger.info("Migrations completed", mode=mode)


main()

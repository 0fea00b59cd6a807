"""Alembic environment for the marketplace tables.

The database URL comes from ``DATABASE_URL`` via the shared settings, so the
same ``.env`` drives the app and its migrations.
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from libs.common.config import get_settings
from libs.db.base import Base
from services.marketplace_service.models import (  # noqa: F401
    CartSession,
    Message,
    Notification,
    Offer,
    Order,
    OrderItem,
    Product,
    SiteSetting,
    SupportTicket,
    SupportTicketMessage,
)
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

# ConfigParser treats "%" as interpolation
config.set_main_option(
    "sqlalchemy.url", get_settings().DATABASE_URL.replace("%", "%%")
)


def run_migrations_offline() -> None:
    """Emit migration SQL without connecting."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def _migrate(connection: Connection) -> None:
    context.configure(
        connection=connection, target_metadata=target_metadata, compare_type=True
    )
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    engine = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    async with engine.connect() as connection:
        await connection.run_sync(_migrate)
    await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())

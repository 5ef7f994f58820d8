"""Alembic environment configuration for async SQLAlchemy."""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy.ext.asyncio import create_async_engine

from servicehub.config import settings
from servicehub.database import Base
from servicehub.models.artisan import ArtisanProfile, ArtisanViolation  # noqa: F401 — ensure models are registered
from servicehub.models.dispute import Dispute  # noqa: F401
from servicehub.models.job import Job, JobStatusHistory  # noqa: F401
from servicehub.models.payment import Payment  # noqa: F401
from servicehub.models.review import Review  # noqa: F401
from servicehub.models.vault import IdentityRecord, RevealAuditLog  # noqa: F401
from servicehub.models.webhook import GatewayEvent  # noqa: F401

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Run migrations in offline mode."""
    url = settings.database_url
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection) -> None:  # type: ignore[no-untyped-def]
    context.configure(connection=connection, target_metadata=target_metadata)
    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    """Run migrations in async online mode."""
    engine = create_async_engine(settings.database_url)
    async with engine.connect() as connection:
        await connection.run_sync(do_run_migrations)
    await engine.dispose()


def run_migrations_online() -> None:
    """Run migrations in online mode."""
    asyncio.run(run_async_migrations())


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

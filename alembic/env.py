import asyncio
from logging.config import fileConfig

# ruff: noqa: F401

from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from alembic import context

from fee_ledger.core.config import settings
from fee_ledger.core.database.base import Base

# Import all models here so they are registered with Base.metadata
from fee_ledger.core.auth.models import User
from fee_ledger.core.audit.models import AuditLog
from fee_ledger.modules.enrollments.models import (
    AcademicYear,
    Classroom,
    Enrollment,
    Grade,
    School,
    Student,
)
from fee_ledger.modules.installments.models import FeeInstallment
from fee_ledger.modules.payments.models import PaymentMethod, StudentFeePayment
from fee_ledger.modules.ledger.models import LedgerDeletion, LedgerEntry

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def get_url() -> str:
    return settings.database_url


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode."""
    context.configure(
        url=get_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    """Run migrations in 'online' mode with async engine."""
    configuration = config.get_section(config.config_ini_section) or {}
    configuration["sqlalchemy.url"] = get_url()

    connectable = async_engine_from_config(
        configuration,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode."""
    asyncio.run(run_async_migrations())


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

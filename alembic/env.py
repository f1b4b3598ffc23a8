"""Alembic environment for the Study Mode schema."""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool

from studymode.config import get_settings
from studymode.db.base import Base
from studymode.db import models  # noqa: F401 - registers tables on Base.metadata

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def migration_url() -> str:
    """
    Sync (psycopg2) URL for migrations.

    `alembic -x url=...` overrides the configured database, e.g. to migrate a
    scratch database without touching the environment.
    """
    override = context.get_x_argument(as_dictionary=True).get("url")
    return override or get_settings().database_url_sync


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=target_metadata,
        compare_type=True,
        compare_server_default=True,
        **kwargs,
    )


def run_migrations_offline() -> None:
    """Emit SQL to stdout instead of executing it."""
    _configure(
        url=migration_url(),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = create_engine(migration_url(), poolclass=pool.NullPool)

    with connectable.connect() as connection:
        _configure(connection=connection)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

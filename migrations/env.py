"""Alembic environment for the booking engine schema.

Revisions are plain SQL files (migrations/sql) run through
env_helpers.run_sql_file; there is no model metadata to compare against.
The target database comes from DATABASE_URL / DB_PASSWORD, never from
alembic.ini.
"""

from __future__ import annotations

import logging
from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool
from sqlalchemy.engine import make_url

from migrations.env_helpers import _get_database_url

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

logger = logging.getLogger("alembic.env")

# Extension creation and constraint builds each get their own transaction.
_CONFIGURE_OPTS = {"target_metadata": None, "transaction_per_migration": True}


def _target() -> str:
    url = _get_database_url()
    parsed = make_url(url)
    logger.info("migrating database %s on %s", parsed.database, parsed.host or "local socket")
    return url


def run_migrations_offline() -> None:
    """Print the SQL instead of running it (alembic upgrade --sql)."""
    context.configure(
        url=_target(),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_CONFIGURE_OPTS,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    engine = create_engine(_target(), poolclass=pool.NullPool)
    try:
        with engine.connect() as connection:
            context.configure(connection=connection, **_CONFIGURE_OPTS)
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

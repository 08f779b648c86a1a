"""Helpers shared by the Alembic env and the SQL-only revisions.

Kept apart from env.py so the URL handling can be tested without an
alembic context.
The engine itself hands DATABASE_URL to psycopg2 as-is; only Alembic
needs a SQLAlchemy URL.
"""

from __future__ import annotations

import os
from pathlib import Path

from alembic import op
from psycopg2.extensions import parse_dsn
from sqlalchemy.engine import URL, make_url

_DRIVER = "postgresql+psycopg2"


def _libpq_dsn_to_url(dsn: str, password: str | None = None) -> str:
    """Convert a libpq key=value DSN to a SQLAlchemy URL.

    A host starting with "/" is a Unix socket directory and goes into the
    query string; anything else is a TCP host.
    """
    params = parse_dsn(dsn)
    username = params.pop("user", None)
    dsn_password = params.pop("password", None)
    database = params.pop("dbname", None)
    host: str | None = params.pop("host", "localhost")
    port: int | None = int(params.pop("port", "5432"))
    # Remaining keywords (sslmode, connect_timeout, ...) ride along as query args.
    query = dict(params)

    if host.startswith("/"):
        query["host"] = host
        host = None
        port = None

    url = URL.create(
        _DRIVER,
        username=username,
        password=dsn_password or password,
        host=host,
        port=port,
        database=database,
        query=query,
    )
    return url.render_as_string(hide_password=False)


def _normalize_url(url: str, password: str | None = None) -> str:
    """Force the psycopg2 driver and fill in a missing password."""
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    parsed = make_url(url).set(drivername=_DRIVER)
    if password and not parsed.password:
        parsed = parsed.set(password=password)
    return parsed.render_as_string(hide_password=False)


def _get_database_url() -> str:
    """SQLAlchemy URL built from DATABASE_URL (URL or libpq DSN) and DB_PASSWORD."""
    raw = os.environ.get("DATABASE_URL")
    if not raw:
        raise RuntimeError("DATABASE_URL is required to run migrations")
    password = os.environ.get("DB_PASSWORD") or None
    if "://" in raw:
        return _normalize_url(raw, password)
    return _libpq_dsn_to_url(raw, password)


SQL_DIR = Path(__file__).resolve().parent / "sql"


def run_sql_file(name: str) -> None:
    """Execute one file from migrations/sql on the migration connection.

    Goes through exec_driver_sql so dollar-quoted function bodies and
    multiple statements reach psycopg2 untouched.
    """
    op.get_bind().exec_driver_sql((SQL_DIR / name).read_text(encoding="utf-8"))

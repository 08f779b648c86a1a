"""Tests for the Alembic DATABASE_URL helpers."""

from __future__ import annotations

import os
from unittest.mock import patch

import pytest
from sqlalchemy.engine import make_url

from migrations.env_helpers import (
    SQL_DIR,
    _get_database_url,
    _libpq_dsn_to_url,
    _normalize_url,
    run_sql_file,
)


class TestLibpqDsnToUrl:
    def test_tcp_host(self):
        result = _libpq_dsn_to_url("dbname=rencam user=admin password=pw host=db port=5432")
        assert result == "postgresql+psycopg2://admin:pw@db:5432/rencam"

    def test_custom_port(self):
        result = _libpq_dsn_to_url("dbname=mydb user=u password=p host=10.0.0.1 port=5433")
        assert result == "postgresql+psycopg2://u:p@10.0.0.1:5433/mydb"

    def test_default_port(self):
        result = _libpq_dsn_to_url("dbname=db user=u password=p host=myhost")
        assert result == "postgresql+psycopg2://u:p@myhost:5432/db"

    def test_socket_directory_goes_to_query(self):
        result = _libpq_dsn_to_url("dbname=rencam user=rencam password=s3cret host=/var/run/postgresql")
        url = make_url(result)
        assert url.host is None
        assert url.port is None
        assert url.query["host"] == "/var/run/postgresql"
        assert url.database == "rencam"
        assert url.password == "s3cret"

    def test_extra_keywords_kept(self):
        result = _libpq_dsn_to_url("dbname=db user=u password=p host=h sslmode=require")
        assert make_url(result).query["sslmode"] == "require"

    def test_special_chars_survive(self):
        result = _libpq_dsn_to_url("dbname=db user=u@domain password=p@ss=word host=h")
        url = make_url(result)
        assert url.username == "u@domain"
        assert url.password == "p@ss=word"

    def test_quoted_password_with_spaces(self):
        result = _libpq_dsn_to_url("dbname=db user=u password='p@ss w0rd' host=h")
        assert make_url(result).password == "p@ss w0rd"

    def test_password_fallback(self):
        result = _libpq_dsn_to_url("dbname=db user=u host=h", password="from-env")
        assert make_url(result).password == "from-env"

    def test_dsn_password_wins(self):
        result = _libpq_dsn_to_url("dbname=db user=u password=from-dsn host=h", password="from-env")
        assert make_url(result).password == "from-dsn"


class TestNormalizeUrl:
    def test_postgres_scheme(self):
        assert _normalize_url("postgres://u:p@h/db").startswith("postgresql+psycopg2://")

    def test_driver_not_doubled(self):
        assert _normalize_url("postgresql+psycopg2://u:p@h/db").count("+psycopg2") == 1

    def test_existing_password_kept(self):
        assert make_url(_normalize_url("postgresql://u:p@h/db", "other")).password == "p"


class TestGetDatabaseUrl:
    def test_url(self):
        with patch.dict(os.environ, {"DATABASE_URL": "postgresql://u:p@h/db"}, clear=True):
            assert _get_database_url() == "postgresql+psycopg2://u:p@h/db"

    def test_dsn_converted(self):
        with patch.dict(os.environ, {"DATABASE_URL": "dbname=rencam user=u host=h"}, clear=True):
            assert _get_database_url() == "postgresql+psycopg2://u@h:5432/rencam"

    def test_db_password_applied(self):
        env = {"DATABASE_URL": "postgresql://u@h/db", "DB_PASSWORD": "secret"}
        with patch.dict(os.environ, env, clear=True):
            assert make_url(_get_database_url()).password == "secret"

    def test_missing_raises(self):
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(RuntimeError, match="DATABASE_URL is required"):
                _get_database_url()


class TestRunSqlFile:
    def test_executes_file_contents_raw(self):
        with patch("migrations.env_helpers.op") as op:
            run_sql_file("002_no_equipment_overlap_constraint.sql")
        sql = op.get_bind.return_value.exec_driver_sql.call_args[0][0]
        assert "EXCLUDE USING gist" in sql

    def test_schema_has_append_only_history(self):
        sql = (SQL_DIR / "001_initial.sql").read_text(encoding="utf-8")
        assert "BEFORE UPDATE OR DELETE ON booking_status_history" in sql
        assert "CREATE TABLE IF NOT EXISTS pending_refunds" in sql

"""Database access layer using psycopg2.

Provides:
- ConnectionPool: bounded pool with a wait-then-fail acquisition timeout
- txn(): Context manager for short, safe transactions on a pooled connection
- fetchone/rows_as_dicts: rows as dicts
- for_update(): SELECT ... FOR UPDATE helper
- translate_errors(): maps psycopg2 failures onto engine error kinds
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Any, Iterator, Sequence
from urllib.parse import urlparse

import psycopg2
from psycopg2 import extensions
from psycopg2.extensions import connection as PgConnection, cursor as PgCursor
from psycopg2.pool import ThreadedConnectionPool

from rencam.domain.errors import PoolExhausted, StoreUnavailable, TransactionAborted

logger = logging.getLogger(__name__)


def _dsn_has_password(dsn: str) -> bool:
    if "://" in dsn:
        return urlparse(dsn).password is not None
    return "password=" in dsn


class ConnectionPool:
    """Bounded pool of psycopg2 connections.

    psycopg2's ThreadedConnectionPool fails immediately once every
    connection is checked out. A bounded semaphore in front of it turns
    that into a wait of at most ``acquire_timeout`` seconds, after which
    PoolExhausted is raised.
    """

    def __init__(
        self,
        dsn: str,
        *,
        minconn: int = 2,
        maxconn: int = 20,
        acquire_timeout: float = 30.0,
        password: str | None = None,
    ) -> None:
        self._dsn = dsn
        self._minconn = minconn
        self._maxconn = maxconn
        self._acquire_timeout = acquire_timeout
        self._password = password
        self._slots = threading.BoundedSemaphore(maxconn)
        self._lock = threading.Lock()
        self._in_use = 0
        self._waiting = 0
        self._pool: ThreadedConnectionPool | None = None

    @property
    def is_open(self) -> bool:
        return self._pool is not None

    def open(self) -> None:
        """Open the underlying pool, connecting ``minconn`` connections eagerly.

        Raises:
            StoreUnavailable: If the initial connections cannot be made.
        """
        if self.is_open:
            return

        kwargs: dict[str, Any] = {}
        if self._password and not _dsn_has_password(self._dsn):
            kwargs["password"] = self._password

        try:
            self._pool = ThreadedConnectionPool(
                self._minconn, self._maxconn, self._dsn, **kwargs
            )
        except psycopg2.OperationalError as exc:
            raise StoreUnavailable(f"Cannot connect to database: {exc}") from exc

        logger.info(
            "connection pool opened",
            extra={"extra_fields": {"min": self._minconn, "max": self._maxconn}},
        )

    def close(self) -> None:
        """Close every pooled connection. Safe to call twice."""
        if self._pool is None:
            return
        self._pool.closeall()
        self._pool = None
        logger.info("connection pool closed")

    @contextmanager
    def connection(self) -> Iterator[PgConnection]:
        """Check out one connection; it is returned to the pool on exit.

        Raises:
            RuntimeError: If the pool has not been opened.
            PoolExhausted: If no connection frees up within the acquire timeout.
            StoreUnavailable: If a fresh connection cannot be established.
        """
        if self._pool is None:
            raise RuntimeError("connection pool is not open")

        with self._lock:
            self._waiting += 1
        acquired = self._slots.acquire(timeout=self._acquire_timeout)
        with self._lock:
            self._waiting -= 1
        if not acquired:
            raise PoolExhausted(
                f"No database connection available within {self._acquire_timeout}s"
            )

        try:
            try:
                conn = self._pool.getconn()
            except psycopg2.OperationalError as exc:
                raise StoreUnavailable(f"Cannot connect to database: {exc}") from exc

            with self._lock:
                self._in_use += 1
            try:
                yield conn
            finally:
                with self._lock:
                    self._in_use -= 1
                self._pool.putconn(conn, close=bool(conn.closed))
        finally:
            self._slots.release()

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {
                "min": self._minconn,
                "max": self._maxconn,
                "in_use": self._in_use,
                "waiting": self._waiting,
            }


@contextmanager
def translate_errors() -> Iterator[None]:
    """Re-raise psycopg2 infrastructure failures as engine error kinds.

    Integrity errors pass through untouched so domain code can interpret
    them (for example an exclusion-constraint violation).
    """
    try:
        yield
    except (extensions.QueryCanceledError, extensions.TransactionRollbackError) as exc:
        raise TransactionAborted(str(exc).strip()) from exc
    except psycopg2.OperationalError as exc:
        raise StoreUnavailable(str(exc).strip()) from exc
    except psycopg2.InterfaceError as exc:
        raise StoreUnavailable(str(exc).strip()) from exc


@contextmanager
def txn(conn: PgConnection) -> Iterator[PgCursor]:
    """Context manager for a short, safe transaction on ``conn``.

    Commits on successful exit, rolls back on exception.

    Example:
        with pool.connection() as conn, txn(conn) as cur:
            cur.execute("INSERT INTO t (x) VALUES (%s)", (1,))
    """
    try:
        with conn.cursor() as cur:
            yield cur
        conn.commit()
    except Exception:
        conn.rollback()
        raise


def rows_as_dicts(cur: PgCursor) -> list[dict[str, Any]]:
    """Fetch all remaining rows as dicts keyed by column name."""
    if cur.description is None:
        return []
    columns = [col[0] for col in cur.description]
    return [dict(zip(columns, row)) for row in cur.fetchall()]


def fetchone(
    cur: PgCursor,
    query: str,
    params: Sequence[Any] | None = None,
) -> dict[str, Any] | None:
    """Execute query and fetch one row as a dict, or None if no results."""
    cur.execute(query, params)
    row = cur.fetchone()
    if row is None:
        return None
    columns = [col[0] for col in cur.description]
    return dict(zip(columns, row))


def for_update(
    cur: PgCursor,
    query: str,
    params: Sequence[Any] | None = None,
    *,
    nowait: bool = False,
    skip_locked: bool = False,
) -> dict[str, Any] | None:
    """Execute SELECT ... FOR UPDATE and fetch one row.

    Appends FOR UPDATE clause to the query. Use within a transaction
    to lock the selected row until commit/rollback.

    Raises:
        ValueError: If both nowait and skip_locked are True.
    """
    if nowait and skip_locked:
        raise ValueError("Cannot use both nowait and skip_locked")

    suffix = " FOR UPDATE"
    if nowait:
        suffix += " NOWAIT"
    elif skip_locked:
        suffix += " SKIP LOCKED"

    full_query = query.rstrip().rstrip(";") + suffix
    return fetchone(cur, full_query, params)

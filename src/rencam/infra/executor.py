"""Cached query executor.

Sits between the domain and PostgreSQL:
- reads may be answered from the result cache without touching the pool
- every write invalidates the cache namespace of the table it touched
- transaction(fn) runs fn on one pooled connection and defers all cache
  invalidation until after COMMIT, so a rolled-back write never evicts
  entries that are still valid

Cache keys live under "<table>:" namespaces so a write to a table can
drop everything derived from it with one "<table>:*" pattern.
"""

from __future__ import annotations

import hashlib
import logging
import re
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Sequence, TypeVar

from psycopg2.extensions import cursor as PgCursor

from rencam.domain.errors import BookingEngineError
from rencam.infra import db
from rencam.infra.cache import ResultCache, build_cache, dumps
from rencam.infra.settings import EngineSettings

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MUTATION_RE = re.compile(
    r"^\s*(?:INSERT\s+INTO|UPDATE|DELETE\s+FROM)\s+\"?([A-Za-z_][\w]*)",
    re.IGNORECASE,
)
# Data-modifying CTEs: WITH x AS (UPDATE bookings ...) SELECT ...
# Skips FOR UPDATE and ON CONFLICT DO UPDATE SET.
_CTE_MUTATION_RE = re.compile(
    r"(?<!FOR )\b(?:INSERT\s+INTO|UPDATE|DELETE\s+FROM)\s+"
    r"(?!(?:SET|NOWAIT|SKIP|OF)\b)\"?([A-Za-z_][\w]*)",
    re.IGNORECASE,
)
_WITH_RE = re.compile(r"^\s*WITH\b", re.IGNORECASE)
_FROM_RE = re.compile(r"\bFROM\s+\"?([A-Za-z_][\w]*)", re.IGNORECASE)
_READ_RE = re.compile(r"^\s*(?:SELECT|WITH)\b", re.IGNORECASE)

SLOW_QUERY_LOG_SIZE = 100


@dataclass(frozen=True)
class QueryOptions:
    """Per-call options for CachedQueryExecutor.execute.

    Attributes:
        cache: Serve from / store into the result cache (reads only).
        cache_key: Explicit key. Should start with the namespace it belongs to.
        cache_ttl: TTL in seconds; executor default when None.
        namespace: Namespace for the derived key; defaults to the FROM table.
        timeout_ms: Statement timeout for this query.
    """

    cache: bool = False
    cache_key: str | None = None
    cache_ttl: int | None = None
    namespace: str | None = None
    timeout_ms: int | None = None


NO_CACHE = QueryOptions()


def mutated_table(query: str) -> str | None:
    """Return the table an INSERT/UPDATE/DELETE writes to, else None.

    WITH statements are searched as a whole, so a write buried in a CTE
    still counts.
    """
    match = _MUTATION_RE.match(query)
    if match is None and _WITH_RE.match(query):
        match = _CTE_MUTATION_RE.search(query)
    return match.group(1).lower() if match else None


def is_read_only(query: str) -> bool:
    return bool(_READ_RE.match(query)) and mutated_table(query) is None


def build_cache_key(
    query: str,
    params: Sequence[Any] | None = None,
    namespace: str | None = None,
) -> str:
    """Derive a deterministic key from normalized query text and parameters."""
    if namespace is None:
        match = _FROM_RE.search(query)
        namespace = match.group(1).lower() if match else "query"
    normalized = " ".join(query.split())
    digest = hashlib.sha256(
        (normalized + "|" + dumps(list(params or ()))).encode("utf-8")
    ).hexdigest()
    return f"{namespace}:q:{digest}"


class QueryMetrics:
    """Query counters, running average latency and a ring buffer of slow queries."""

    def __init__(self, slow_query_ms: int = 1000, enabled: bool = True) -> None:
        self.slow_query_ms = slow_query_ms
        self.enabled = enabled
        self._lock = threading.Lock()
        self.total_queries = 0
        self.avg_latency_ms = 0.0
        self.cache_hits = 0
        self.cache_misses = 0
        self.cache_errors = 0
        self.slow_queries: deque[dict[str, Any]] = deque(maxlen=SLOW_QUERY_LOG_SIZE)

    def record_query(self, query: str, param_count: int, elapsed_ms: float) -> None:
        if not self.enabled:
            return
        with self._lock:
            self.total_queries += 1
            self.avg_latency_ms += (elapsed_ms - self.avg_latency_ms) / self.total_queries
            if elapsed_ms <= self.slow_query_ms:
                return
            entry = {
                "query": " ".join(query.split())[:200],
                "param_count": param_count,
                "elapsed_ms": round(elapsed_ms, 2),
                "at": time.time(),
            }
            self.slow_queries.append(entry)
        logger.warning("slow query", extra={"extra_fields": entry})

    def record_cache(self, *, hit: bool = False, error: bool = False) -> None:
        if not self.enabled:
            return
        with self._lock:
            if error:
                self.cache_errors += 1
            elif hit:
                self.cache_hits += 1
            else:
                self.cache_misses += 1

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "total_queries": self.total_queries,
                "avg_latency_ms": round(self.avg_latency_ms, 3),
                "slow_queries": list(self.slow_queries),
                "cache_hits": self.cache_hits,
                "cache_misses": self.cache_misses,
                "cache_errors": self.cache_errors,
            }


class Transaction:
    """Handle passed to transaction callbacks.

    All statements run on the same cursor (same connection, same
    transaction). Reads never consult the cache. Cache namespaces touched
    by writes are collected and only invalidated once the executor has
    committed.
    """

    def __init__(self, cur: PgCursor, metrics: QueryMetrics | None = None) -> None:
        self._cur = cur
        self._metrics = metrics
        self._invalidations: list[str] = []

    @property
    def pending_invalidations(self) -> list[str]:
        return list(dict.fromkeys(self._invalidations))

    def invalidate_after_commit(self, pattern: str) -> None:
        self._invalidations.append(pattern)

    def _reset_timeout(self) -> None:
        # Separate cursor: the query cursor still holds the caller's result set.
        with self._cur.connection.cursor() as side:
            side.execute("SET LOCAL statement_timeout TO DEFAULT")

    def _run(self, query: str, params: Sequence[Any] | None, timeout_ms: int | None) -> None:
        if timeout_ms is not None:
            self._cur.execute("SET LOCAL statement_timeout = %s", (int(timeout_ms),))
        start = time.perf_counter()
        self._cur.execute(query, params)
        elapsed_ms = (time.perf_counter() - start) * 1000
        if timeout_ms is not None:
            self._reset_timeout()
        if self._metrics is not None:
            self._metrics.record_query(query, len(params or ()), elapsed_ms)

        table = mutated_table(query)
        if table is not None:
            self._invalidations.append(f"{table}:*")

    def execute(
        self,
        query: str,
        params: Sequence[Any] | None = None,
        *,
        timeout_ms: int | None = None,
    ) -> int:
        """Run a statement and return its rowcount."""
        self._run(query, params, timeout_ms)
        return self._cur.rowcount

    def fetchone(
        self,
        query: str,
        params: Sequence[Any] | None = None,
        *,
        timeout_ms: int | None = None,
    ) -> dict[str, Any] | None:
        self._run(query, params, timeout_ms)
        row = self._cur.fetchone()
        if row is None:
            return None
        columns = [col[0] for col in self._cur.description]
        return dict(zip(columns, row))

    def fetchall(
        self,
        query: str,
        params: Sequence[Any] | None = None,
        *,
        timeout_ms: int | None = None,
    ) -> list[dict[str, Any]]:
        self._run(query, params, timeout_ms)
        return db.rows_as_dicts(self._cur)

    def for_update(
        self,
        query: str,
        params: Sequence[Any] | None = None,
        *,
        nowait: bool = False,
    ) -> dict[str, Any] | None:
        """SELECT ... FOR UPDATE on this transaction's connection."""
        start = time.perf_counter()
        row = db.for_update(self._cur, query, params, nowait=nowait)
        if self._metrics is not None:
            self._metrics.record_query(
                query, len(params or ()), (time.perf_counter() - start) * 1000
            )
        return row


class CachedQueryExecutor:
    """Pooled, cache-aware gateway to the relational store.

    Constructed explicitly and passed to whoever needs it; open() and
    close() belong to the owner.
    """

    def __init__(
        self,
        pool: db.ConnectionPool,
        cache: ResultCache | None = None,
        *,
        default_ttl: int = 300,
        metrics: QueryMetrics | None = None,
    ) -> None:
        self._pool = pool
        self._cache = cache
        self._default_ttl = default_ttl
        self.metrics = metrics or QueryMetrics()

    @classmethod
    def from_settings(cls, settings: EngineSettings) -> "CachedQueryExecutor":
        pool = db.ConnectionPool(
            settings.database_url,
            minconn=settings.pool_min,
            maxconn=settings.pool_max,
            acquire_timeout=settings.pool_acquire_timeout,
            password=settings.db_password,
        )
        return cls(
            pool,
            build_cache(settings),
            default_ttl=settings.cache_ttl,
            metrics=QueryMetrics(settings.slow_query_ms, enabled=settings.metrics_enabled),
        )

    @property
    def cache(self) -> ResultCache | None:
        return self._cache

    def open(self) -> None:
        self._pool.open()

    def close(self) -> None:
        self._pool.close()
        if self._cache is not None:
            try:
                self._cache.close()
            except Exception as exc:
                logger.warning("cache close failed", extra={"extra_fields": {"error": str(exc)}})

    def __enter__(self) -> "CachedQueryExecutor":
        self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ── cache plumbing (errors are logged, never raised) ──────────────

    def _cache_get(self, key: str) -> Any | None:
        if self._cache is None:
            return None
        try:
            value = self._cache.get(key)
        except Exception as exc:
            self.metrics.record_cache(error=True)
            logger.warning(
                "cache read failed, querying store",
                extra={"extra_fields": {"key": key, "error": str(exc)}},
            )
            return None
        self.metrics.record_cache(hit=value is not None)
        return value

    def _cache_set(self, key: str, value: Any, ttl: int) -> None:
        if self._cache is None:
            return
        try:
            self._cache.set(key, value, ttl)
        except Exception as exc:
            self.metrics.record_cache(error=True)
            logger.warning(
                "cache write failed",
                extra={"extra_fields": {"key": key, "error": str(exc)}},
            )

    def invalidate(self, pattern: str) -> int:
        """Drop every cache entry whose key matches ``pattern`` (glob style)."""
        if self._cache is None:
            return 0
        try:
            deleted = self._cache.delete_pattern(pattern)
        except Exception as exc:
            self.metrics.record_cache(error=True)
            logger.warning(
                "cache invalidation failed",
                extra={"extra_fields": {"pattern": pattern, "error": str(exc)}},
            )
            return 0
        logger.debug(
            "cache invalidated",
            extra={"extra_fields": {"pattern": pattern, "deleted": deleted}},
        )
        return deleted

    # ── public contract ───────────────────────────────────────────────

    def execute(
        self,
        query: str,
        params: Sequence[Any] | None = None,
        options: QueryOptions = NO_CACHE,
    ) -> list[dict[str, Any]]:
        """Run one statement in its own short transaction.

        Cached reads return without acquiring a connection. Writes
        invalidate their table's namespace after commit, before returning.

        Raises:
            PoolExhausted, StoreUnavailable, TransactionAborted.
        """
        key = None
        if options.cache and self._cache is not None and is_read_only(query):
            key = options.cache_key or build_cache_key(query, params, options.namespace)
            cached = self._cache_get(key)
            if cached is not None:
                return cached

        with db.translate_errors(), self._pool.connection() as conn:
            with db.txn(conn) as cur:
                tx = Transaction(cur, self.metrics)
                tx.execute(query, params, timeout_ms=options.timeout_ms)
                rows = db.rows_as_dicts(cur)

        for pattern in tx.pending_invalidations:
            self.invalidate(pattern)

        if key is not None:
            self._cache_set(key, rows, options.cache_ttl or self._default_ttl)
        return rows

    def transaction(self, fn: Callable[[Transaction], T]) -> T:
        """Run ``fn`` inside one transaction on one pooled connection.

        Commits when fn returns, rolls back and re-raises when it raises.
        The connection is always released. Cache invalidations requested
        during fn run only after a successful commit.
        """
        with db.translate_errors(), self._pool.connection() as conn:
            with db.txn(conn) as cur:
                tx = Transaction(cur, self.metrics)
                result = fn(tx)

        for pattern in tx.pending_invalidations:
            self.invalidate(pattern)
        return result

    def health_check(self) -> dict[str, Any]:
        """Report store and cache liveness plus pool and query metrics."""
        try:
            rows = self.execute("SELECT 1 AS healthy")
            database = bool(rows) and rows[0].get("healthy") == 1
        except BookingEngineError:
            database = False

        cache_ok = False
        cache_size = None
        if self._cache is not None:
            try:
                cache_ok = self._cache.ping()
                cache_size = self._cache.size() if cache_ok else None
            except Exception:
                cache_ok = False

        return {
            "database": database,
            "cache": cache_ok,
            "cache_backend": self._cache.backend if self._cache is not None else None,
            "cache_size": cache_size,
            "pool": self._pool.stats(),
            "metrics": self.metrics.snapshot() if self.metrics.enabled else None,
        }

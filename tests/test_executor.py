"""Tests for the cached query executor."""

from unittest.mock import MagicMock, call

import pytest

from helpers import FakePool, set_result
from rencam.domain.errors import EquipmentUnavailable, StoreUnavailable
from rencam.infra.cache import MemoryResultCache
from rencam.infra.executor import (
    SLOW_QUERY_LOG_SIZE,
    CachedQueryExecutor,
    QueryMetrics,
    QueryOptions,
    Transaction,
    build_cache_key,
    is_read_only,
    mutated_table,
)

SELECT_BOOKING = "SELECT id, status FROM bookings WHERE id = %s"


class TestQueryClassification:
    @pytest.mark.parametrize(
        "query,table",
        [
            ("INSERT INTO bookings (id) VALUES (%s)", "bookings"),
            ("  update equipment SET views_count = 1", "equipment"),
            ("\n DELETE FROM pending_refunds WHERE id = %s", "pending_refunds"),
            ("SELECT * FROM bookings", None),
        ],
    )
    def test_mutated_table(self, query, table):
        assert mutated_table(query) == table

    def test_is_read_only(self):
        assert is_read_only("SELECT 1")
        assert is_read_only("WITH x AS (SELECT 1) SELECT * FROM x")
        assert not is_read_only("UPDATE bookings SET status = 'x'")

    @pytest.mark.parametrize(
        "query,table",
        [
            (
                "WITH moved AS (UPDATE bookings SET status = 'active' RETURNING id) "
                "SELECT * FROM moved",
                "bookings",
            ),
            (
                "with gone as (\n  delete from pending_refunds where id = %s returning *\n) "
                "select count(*) from gone",
                "pending_refunds",
            ),
            ("WITH x AS (SELECT id FROM bookings) SELECT * FROM x FOR UPDATE", None),
            (
                "WITH r AS (SELECT %s AS id) INSERT INTO equipment (id) SELECT id FROM r "
                "ON CONFLICT (id) DO UPDATE SET views_count = equipment.views_count + 1",
                "equipment",
            ),
        ],
    )
    def test_writes_inside_cte(self, query, table):
        assert mutated_table(query) == table
        assert is_read_only(query) is (table is None)

    def test_cte_write_is_not_cached_and_invalidates(self, executor, pool, cursor, memory_cache):
        memory_cache.set("bookings:id:b1", [{"id": "b1"}], ttl=60)
        set_result(cursor, ["id"], [("b1",)])
        query = (
            "WITH moved AS (UPDATE bookings SET status = 'active' WHERE id = %s RETURNING id) "
            "SELECT id FROM moved"
        )

        executor.execute(query, ("b1",), QueryOptions(cache=True))
        executor.execute(query, ("b1",), QueryOptions(cache=True))

        assert pool.checkouts == 2
        assert memory_cache.get("bookings:id:b1") is None

    def test_cache_key_is_deterministic_and_namespaced(self):
        a = build_cache_key(SELECT_BOOKING, ("b1",))
        b = build_cache_key("SELECT id,   status\nFROM bookings WHERE id = %s", ("b1",))
        c = build_cache_key(SELECT_BOOKING, ("b2",))
        assert a == b
        assert a != c
        assert a.startswith("bookings:q:")

    def test_cache_key_explicit_namespace(self):
        assert build_cache_key("SELECT 1", None, "health").startswith("health:q:")


class TestExecute:
    def test_read_is_cached(self, executor, pool, cursor):
        set_result(cursor, ["id", "status"], [("b1", "pending")])
        opts = QueryOptions(cache=True)

        first = executor.execute(SELECT_BOOKING, ("b1",), opts)
        second = executor.execute(SELECT_BOOKING, ("b1",), opts)

        assert first == second == [{"id": "b1", "status": "pending"}]
        assert pool.checkouts == 1
        assert executor.metrics.cache_hits == 1
        assert executor.metrics.cache_misses == 1

    def test_uncached_read_always_hits_store(self, executor, pool, cursor):
        set_result(cursor, ["id"], [("b1",)])
        executor.execute(SELECT_BOOKING, ("b1",))
        executor.execute(SELECT_BOOKING, ("b1",))
        assert pool.checkouts == 2

    def test_explicit_cache_key_and_ttl(self, executor, cursor, memory_cache):
        set_result(cursor, ["id"], [("b1",)])
        executor.execute(
            SELECT_BOOKING,
            ("b1",),
            QueryOptions(cache=True, cache_key="bookings:id:b1", cache_ttl=5),
        )
        assert memory_cache.get("bookings:id:b1") == [{"id": "b1"}]

    def test_write_invalidates_table_namespace(self, executor, cursor, memory_cache):
        memory_cache.set("bookings:id:b1", [{"id": "b1"}], ttl=60)
        memory_cache.set("equipment:id:e1", [{"id": "e1"}], ttl=60)
        cursor.description = None

        executor.execute("UPDATE bookings SET status = %s WHERE id = %s", ("confirmed", "b1"))

        assert memory_cache.get("bookings:id:b1") is None
        assert memory_cache.get("equipment:id:e1") == [{"id": "e1"}]

    def test_write_is_never_served_from_cache(self, executor, pool, cursor):
        cursor.description = None
        opts = QueryOptions(cache=True)
        executor.execute("UPDATE bookings SET status = 'x' WHERE id = %s", ("b1",), opts)
        executor.execute("UPDATE bookings SET status = 'x' WHERE id = %s", ("b1",), opts)
        assert pool.checkouts == 2

    def test_broken_cache_degrades_to_store(self, pool, cursor):
        cache = MagicMock()
        cache.get.side_effect = RuntimeError("cache down")
        cache.set.side_effect = RuntimeError("cache down")
        executor = CachedQueryExecutor(pool, cache)
        set_result(cursor, ["id"], [("b1",)])

        rows = executor.execute(SELECT_BOOKING, ("b1",), QueryOptions(cache=True))

        assert rows == [{"id": "b1"}]
        assert executor.metrics.cache_errors == 2

    def test_no_cache_configured(self, pool, cursor):
        executor = CachedQueryExecutor(pool, None)
        set_result(cursor, ["id"], [("b1",)])
        assert executor.execute(SELECT_BOOKING, ("b1",), QueryOptions(cache=True)) == [
            {"id": "b1"}
        ]
        assert executor.invalidate("bookings:*") == 0


class TestTransaction:
    def test_commit_then_invalidate(self, executor, pool, memory_cache):
        memory_cache.set("bookings:id:b1", [{"id": "b1"}], ttl=60)
        memory_cache.set("equipment:id:e1", [{"id": "e1"}], ttl=60)

        def fn(tx):
            tx.execute("UPDATE bookings SET status = %s WHERE id = %s", ("confirmed", "b1"))
            tx.invalidate_after_commit("equipment:id:e1")
            # Still cached until commit.
            assert memory_cache.get("bookings:id:b1") is not None
            return "done"

        assert executor.transaction(fn) == "done"
        pool.conn.commit.assert_called_once()
        assert memory_cache.get("bookings:id:b1") is None
        assert memory_cache.get("equipment:id:e1") is None

    def test_rollback_keeps_cache(self, executor, pool, memory_cache):
        memory_cache.set("bookings:id:b1", [{"id": "b1"}], ttl=60)

        def fn(tx):
            tx.execute("UPDATE bookings SET status = %s WHERE id = %s", ("confirmed", "b1"))
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            executor.transaction(fn)

        pool.conn.rollback.assert_called_once()
        pool.conn.commit.assert_not_called()
        assert memory_cache.get("bookings:id:b1") == [{"id": "b1"}]

    def test_domain_error_propagates_unchanged(self, executor):
        from datetime import date

        def fn(tx):
            raise EquipmentUnavailable("e1", date(2026, 1, 1), date(2026, 1, 2))

        with pytest.raises(EquipmentUnavailable):
            executor.transaction(fn)

    def test_statement_timeout_keeps_result_set(self, cursor):
        set_result(cursor, ["n"], [(1,)])
        tx = Transaction(cursor)

        assert tx.fetchone("SELECT 1 AS n", None, timeout_ms=250) == {"n": 1}
        assert tx.fetchall("SELECT 1 AS n", None, timeout_ms=250) == [{"n": 1}]

        # The reset goes through a side cursor; the query cursor only sees
        # the SET and the query itself.
        assert cursor.execute.call_args_list[:2] == [
            call("SET LOCAL statement_timeout = %s", (250,)),
            call("SELECT 1 AS n", None),
        ]
        assert call("SET LOCAL statement_timeout TO DEFAULT") not in cursor.execute.call_args_list
        side = cursor.connection.cursor.return_value.__enter__.return_value
        side.execute.assert_called_with("SET LOCAL statement_timeout TO DEFAULT")

    def test_timed_read_through_executor_returns_rows(self, executor, cursor, memory_cache):
        set_result(cursor, ["id"], [("b1",)])
        opts = QueryOptions(cache=True, cache_key="bookings:id:b1", timeout_ms=5000)

        assert executor.execute(SELECT_BOOKING, ("b1",), opts) == [{"id": "b1"}]
        assert memory_cache.get("bookings:id:b1") == [{"id": "b1"}]

    def test_pending_invalidations_deduplicated(self, cursor):
        tx = Transaction(cursor)
        tx.execute("UPDATE bookings SET status = 'a' WHERE id = %s", ("1",))
        tx.execute("UPDATE bookings SET status = 'b' WHERE id = %s", ("2",))
        tx.invalidate_after_commit("equipment:id:e1")
        assert tx.pending_invalidations == ["bookings:*", "equipment:id:e1"]

    def test_for_update_appends_clause(self, cursor):
        set_result(cursor, ["id"], [("e1",)])
        tx = Transaction(cursor)
        row = tx.for_update("SELECT id FROM equipment WHERE id = %s", ("e1",))
        assert row == {"id": "e1"}
        cursor.execute.assert_called_once_with(
            "SELECT id FROM equipment WHERE id = %s FOR UPDATE", ("e1",)
        )


class TestQueryMetrics:
    def test_average_latency(self):
        metrics = QueryMetrics()
        metrics.record_query("SELECT 1", 0, 10.0)
        metrics.record_query("SELECT 1", 0, 20.0)
        snapshot = metrics.snapshot()
        assert snapshot["total_queries"] == 2
        assert snapshot["avg_latency_ms"] == 15.0
        assert snapshot["slow_queries"] == []

    def test_slow_queries_ring_buffer(self):
        metrics = QueryMetrics(slow_query_ms=100)
        long_query = "SELECT " + "x, " * 200 + "1"
        for _ in range(SLOW_QUERY_LOG_SIZE + 50):
            metrics.record_query(long_query, 3, 150.0)

        slow = metrics.snapshot()["slow_queries"]
        assert len(slow) == SLOW_QUERY_LOG_SIZE
        assert len(slow[0]["query"]) == 200
        assert slow[0]["param_count"] == 3

    def test_disabled(self):
        metrics = QueryMetrics(enabled=False)
        metrics.record_query("SELECT 1", 0, 5000.0)
        metrics.record_cache(hit=True)
        assert metrics.snapshot()["total_queries"] == 0
        assert metrics.snapshot()["cache_hits"] == 0


class TestHealthCheck:
    def test_healthy(self, executor, cursor):
        set_result(cursor, ["healthy"], [(1,)])
        report = executor.health_check()
        assert report["database"] is True
        assert report["cache"] is True
        assert report["cache_backend"] == "memory"
        assert report["pool"] == {"min": 1, "max": 1, "in_use": 0, "waiting": 0}
        assert report["metrics"]["total_queries"] == 1

    def test_store_down(self, memory_cache):
        pool = MagicMock()
        pool.connection.side_effect = StoreUnavailable("refused")
        executor = CachedQueryExecutor(pool, memory_cache)
        assert executor.health_check()["database"] is False

    def test_lifecycle_delegates_to_pool(self, cursor):
        pool = FakePool(cursor)
        cache = MemoryResultCache()
        cache.set("k", 1, ttl=60)
        with CachedQueryExecutor(pool, cache):
            assert pool.opened
        assert not pool.opened
        assert cache.size() == 0

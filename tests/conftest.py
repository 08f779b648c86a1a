"""Shared pytest fixtures for booking engine tests."""
import sys
sys.dont_write_bytecode = True

from unittest.mock import MagicMock  # noqa: E402

import pytest  # noqa: E402

from helpers import FakePool, make_booking, make_equipment  # noqa: E402
from rencam.infra.cache import MemoryResultCache  # noqa: E402
from rencam.infra.executor import CachedQueryExecutor  # noqa: E402


@pytest.fixture
def cursor():
    """Mock psycopg2 cursor; set .description / .fetchall per test."""
    cur = MagicMock()
    cur.description = None
    cur.rowcount = 0
    return cur


@pytest.fixture
def pool(cursor):
    return FakePool(cursor)


@pytest.fixture
def memory_cache():
    return MemoryResultCache(max_entries=100)


@pytest.fixture
def executor(pool, memory_cache):
    return CachedQueryExecutor(pool, memory_cache, default_ttl=60)


@pytest.fixture
def tx():
    """Mock Transaction handed to domain callbacks."""
    return MagicMock(name="tx")


@pytest.fixture
def tx_executor(tx):
    """Executor double whose transaction(fn) runs fn(tx) with the mock tx."""
    ex = MagicMock(name="executor")
    ex.transaction.side_effect = lambda fn: fn(tx)
    return ex


@pytest.fixture
def equipment():
    return make_equipment()


@pytest.fixture
def booking():
    return make_booking()

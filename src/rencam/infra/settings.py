"""Engine configuration loaded from environment variables.

All knobs for the connection pool, result cache and query metrics live here
so the executor can be built explicitly by its owner (app factory, worker,
tests) instead of reading the environment at import time.
"""

from __future__ import annotations

import os
from dataclasses import dataclass


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}")


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be a number, got {raw!r}")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class EngineSettings:
    """Runtime settings for the booking engine.

    Attributes:
        database_url: libpq DSN or postgres:// URL.
        db_password: Password injected when the DSN carries none.
        pool_min: Connections opened eagerly.
        pool_max: Hard cap on concurrently checked-out connections.
        pool_acquire_timeout: Seconds to wait for a free connection.
        redis_url: Redis URL for the shared result cache. None selects
                   the in-process cache.
        cache_enabled: Master switch for result caching.
        cache_ttl: Default TTL in seconds for cached reads.
        cache_max_entries: Bound for the in-process cache.
        cache_socket_timeout: Redis connect/command timeout in seconds.
        slow_query_ms: Latency above which a query is recorded as slow.
        metrics_enabled: Collect query metrics.
        log_level: Root log level name.
    """

    database_url: str
    db_password: str | None = None
    pool_min: int = 2
    pool_max: int = 20
    pool_acquire_timeout: float = 30.0
    redis_url: str | None = None
    cache_enabled: bool = True
    cache_ttl: int = 300
    cache_max_entries: int = 1000
    cache_socket_timeout: float = 0.5
    slow_query_ms: int = 1000
    metrics_enabled: bool = True
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.pool_min < 0:
            raise ValueError("pool_min must be >= 0")
        if self.pool_max < 1:
            raise ValueError("pool_max must be >= 1")
        if self.pool_min > self.pool_max:
            raise ValueError("pool_min cannot exceed pool_max")
        if self.cache_ttl <= 0:
            raise ValueError("cache_ttl must be positive")


def load_settings() -> EngineSettings:
    """Build EngineSettings from the process environment.

    Raises:
        RuntimeError: If DATABASE_URL is not set or a numeric variable is malformed.
    """
    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        raise RuntimeError("DATABASE_URL environment variable not set")

    return EngineSettings(
        database_url=database_url,
        db_password=os.environ.get("DB_PASSWORD") or None,
        pool_min=_env_int("DB_POOL_MIN", 2),
        pool_max=_env_int("DB_POOL_MAX", 20),
        pool_acquire_timeout=_env_float("DB_POOL_ACQUIRE_TIMEOUT", 30.0),
        redis_url=os.environ.get("REDIS_URL") or None,
        cache_enabled=_env_bool("CACHE_ENABLED", True),
        cache_ttl=_env_int("CACHE_TTL", 300),
        cache_max_entries=_env_int("CACHE_MAX_ENTRIES", 1000),
        cache_socket_timeout=_env_float("CACHE_SOCKET_TIMEOUT", 0.5),
        slow_query_ms=_env_int("SLOW_QUERY_MS", 1000),
        metrics_enabled=_env_bool("METRICS_ENABLED", True),
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    )

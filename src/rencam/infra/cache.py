"""Result cache for the query executor.

Two backends share one interface:
- RedisResultCache: shared cache for every process behind the API.
- MemoryResultCache: in-process fallback when Redis is not configured
  or unreachable at startup.

Cache failures never propagate. A broken cache behaves like an empty one;
the executor then reads from the store.
"""

from __future__ import annotations

import fnmatch
import json
import logging
import threading
import time
from collections import OrderedDict
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Protocol
from uuid import UUID

import redis
from redis.exceptions import RedisError

from rencam.infra.settings import EngineSettings
from rencam.observability.redaction import redact_url

logger = logging.getLogger(__name__)


# ── Serialization ──────────────────────────────────────────────────────
# Cached rows must come back with the same Python types psycopg2 produced,
# otherwise money would silently turn into floats on a cache hit.


def _encode(value: Any) -> Any:
    if isinstance(value, Decimal):
        return {"__decimal__": str(value)}
    if isinstance(value, datetime):
        return {"__datetime__": value.isoformat()}
    if isinstance(value, date):
        return {"__date__": value.isoformat()}
    if isinstance(value, UUID):
        return {"__uuid__": str(value)}
    raise TypeError(f"Cannot cache value of type {type(value).__name__}")


def _decode(obj: dict[str, Any]) -> Any:
    if len(obj) == 1:
        if "__decimal__" in obj:
            return Decimal(obj["__decimal__"])
        if "__datetime__" in obj:
            return datetime.fromisoformat(obj["__datetime__"])
        if "__date__" in obj:
            return date.fromisoformat(obj["__date__"])
        if "__uuid__" in obj:
            return UUID(obj["__uuid__"])
    return obj


def dumps(value: Any) -> str:
    return json.dumps(value, default=_encode, separators=(",", ":"))


def loads(raw: str | bytes) -> Any:
    return json.loads(raw, object_hook=_decode)


class ResultCache(Protocol):
    """Interface the executor relies on."""

    backend: str

    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any, ttl: int) -> None: ...

    def delete_pattern(self, pattern: str) -> int: ...

    def ping(self) -> bool: ...

    def size(self) -> int: ...

    def close(self) -> None: ...


class MemoryResultCache:
    """Thread-safe in-process cache with TTL and a size bound.

    Values are stored serialized so a caller mutating a returned row
    cannot corrupt the cached copy. When full, the oldest entry is evicted.
    """

    backend = "memory"

    def __init__(self, max_entries: int = 1000, clock=time.monotonic) -> None:
        self._max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, tuple[str, float]] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            raw, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
        return loads(raw)

    def set(self, key: str, value: Any, ttl: int) -> None:
        raw = dumps(value)
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            if len(self._entries) >= self._max_entries:
                self._purge_locked(self._clock())
            while len(self._entries) >= self._max_entries:
                self._entries.popitem(last=False)
            self._entries[key] = (raw, self._clock() + ttl)

    def delete_pattern(self, pattern: str) -> int:
        with self._lock:
            doomed = [k for k in self._entries if fnmatch.fnmatchcase(k, pattern)]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    def _purge_locked(self, now: float) -> int:
        expired = [k for k, (_, exp) in self._entries.items() if now >= exp]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def ping(self) -> bool:
        return True

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def close(self) -> None:
        with self._lock:
            self._entries.clear()


class RedisResultCache:
    """Redis-backed cache. Every command is bounded by a short socket timeout."""

    backend = "redis"

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str, *, socket_timeout: float = 0.5) -> "RedisResultCache":
        client = redis.from_url(
            url,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
            health_check_interval=30,
        )
        return cls(client)

    def get(self, key: str) -> Any | None:
        raw = self._client.get(key)
        if raw is None:
            return None
        return loads(raw)

    def set(self, key: str, value: Any, ttl: int) -> None:
        self._client.setex(key, ttl, dumps(value))

    def delete_pattern(self, pattern: str) -> int:
        count = 0
        for key in self._client.scan_iter(match=pattern, count=500):
            count += self._client.delete(key)
        return count

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except RedisError:
            return False

    def size(self) -> int:
        return int(self._client.dbsize())

    def close(self) -> None:
        self._client.close()


def build_cache(settings: EngineSettings) -> ResultCache | None:
    """Pick a cache backend from settings.

    Returns None when caching is disabled. Falls back to the in-process
    cache when Redis is configured but does not answer a PING.
    """
    if not settings.cache_enabled:
        return None

    if settings.redis_url:
        cache = RedisResultCache.from_url(
            settings.redis_url, socket_timeout=settings.cache_socket_timeout
        )
        if cache.ping():
            logger.info("result cache connected", extra={"extra_fields": {"backend": "redis"}})
            return cache
        logger.warning(
            "redis unavailable, falling back to memory cache",
            extra={
                "extra_fields": {"backend": "memory", "redis_url": redact_url(settings.redis_url)}
            },
        )
        cache.close()

    return MemoryResultCache(max_entries=settings.cache_max_entries)

"""Generic by-id reader shared by the entity repositories.

Entity-specific queries are free functions in each repository module; this
class only covers what every table has in common: a cached lookup by
primary key outside transactions, and an uncached (optionally locking)
lookup inside one.
"""

from __future__ import annotations

from typing import Any, Callable, Generic, TypeVar

from rencam.infra.executor import CachedQueryExecutor, QueryOptions, Transaction

E = TypeVar("E")


class EntityReader(Generic[E]):
    """Read one entity type from one table.

    Args:
        table: Table name; also the cache namespace.
        columns: Column list used in every SELECT.
        from_row: Maps a row dict onto the entity.
        ttl: Cache TTL in seconds for by-id reads.
    """

    def __init__(
        self,
        table: str,
        columns: str,
        from_row: Callable[[dict[str, Any]], E],
        *,
        ttl: int = 300,
    ) -> None:
        self.table = table
        self.columns = columns
        self.from_row = from_row
        self.ttl = ttl

    def cache_key(self, entity_id: str) -> str:
        return f"{self.table}:id:{entity_id}"

    def _by_id_query(self) -> str:
        return f"SELECT {self.columns} FROM {self.table} WHERE id = %s"

    def get(
        self,
        executor: CachedQueryExecutor,
        entity_id: str,
        *,
        cache: bool = True,
    ) -> E | None:
        rows = executor.execute(
            self._by_id_query(),
            (entity_id,),
            QueryOptions(cache=cache, cache_key=self.cache_key(entity_id), cache_ttl=self.ttl),
        )
        return self.from_row(rows[0]) if rows else None

    def get_in(self, tx: Transaction, entity_id: str, *, lock: bool = False) -> E | None:
        if lock:
            row = tx.for_update(self._by_id_query(), (entity_id,))
        else:
            row = tx.fetchone(self._by_id_query(), (entity_id,))
        return self.from_row(row) if row is not None else None

"""Equipment availability.

Overlap formula (inclusive bounds):  NOT (existing_end < new_start OR existing_start > new_end)
Renting Mon-Wed and Wed-Fri therefore conflicts on Wednesday.

Only confirmed and active bookings block a request.

Inside a transaction the check runs after locking the equipment row, on the
same connection as the write that follows. Two concurrent requests for the
same item serialize on that lock, so the second one sees the first one's
booking. The exclusion constraint on the bookings table backs this up.
"""

from __future__ import annotations

import calendar
import logging
from datetime import date
from typing import Any

from rencam.domain.errors import EquipmentUnavailable, InvalidDuration
from rencam.infra.executor import CachedQueryExecutor, QueryOptions, Transaction
from rencam.infra.repositories.bookings_repository import list_equipment_bookings_between

logger = logging.getLogger(__name__)

BLOCKING_STATUSES = ("confirmed", "active")
CALENDAR_STATUSES = ("confirmed", "active", "completed")

AVAILABILITY_CACHE_TTL = 300
CALENDAR_CACHE_TTL = 3600

_CONFLICT_QUERY = """
    SELECT COUNT(*) AS conflicts
    FROM bookings
    WHERE equipment_id = %s
      AND status = ANY(%s)
      AND NOT (end_date < %s OR start_date > %s)
"""


def _validate_range(start_date: date, end_date: date) -> None:
    if end_date < start_date:
        raise InvalidDuration(
            f"End date {end_date.isoformat()} is before start date {start_date.isoformat()}"
        )


def availability_cache_key(equipment_id: str, start_date: date, end_date: date) -> str:
    # Under the bookings namespace: any booking write drops it.
    return f"bookings:availability:{equipment_id}:{start_date.isoformat()}:{end_date.isoformat()}"


def count_conflicts(
    tx: Transaction,
    *,
    equipment_id: str,
    start_date: date,
    end_date: date,
    exclude_booking_id: str | None = None,
) -> int:
    """Count blocking bookings overlapping the range, on the transaction's connection."""
    query = _CONFLICT_QUERY
    params: list[Any] = [equipment_id, list(BLOCKING_STATUSES), start_date, end_date]
    if exclude_booking_id is not None:
        query += " AND id <> %s"
        params.append(exclude_booking_id)

    row = tx.fetchone(query, params)
    return int(row["conflicts"]) if row else 0


def is_available(
    tx: Transaction,
    *,
    equipment_id: str,
    start_date: date,
    end_date: date,
    exclude_booking_id: str | None = None,
) -> bool:
    """Transactional availability check.

    Caller must already hold the equipment row lock (see
    equipment_repository.lock_equipment) for the result to stay true
    until its own write commits.
    """
    _validate_range(start_date, end_date)
    return (
        count_conflicts(
            tx,
            equipment_id=equipment_id,
            start_date=start_date,
            end_date=end_date,
            exclude_booking_id=exclude_booking_id,
        )
        == 0
    )


def assert_available(
    tx: Transaction,
    *,
    equipment_id: str,
    start_date: date,
    end_date: date,
    exclude_booking_id: str | None = None,
) -> None:
    """Raise EquipmentUnavailable if the range is taken."""
    if not is_available(
        tx,
        equipment_id=equipment_id,
        start_date=start_date,
        end_date=end_date,
        exclude_booking_id=exclude_booking_id,
    ):
        logger.info(
            "equipment conflict detected",
            extra={
                "extra_fields": {
                    "equipment_id": equipment_id,
                    "requested_start": start_date.isoformat(),
                    "requested_end": end_date.isoformat(),
                    "exclude_booking_id": exclude_booking_id,
                }
            },
        )
        raise EquipmentUnavailable(equipment_id, start_date, end_date)


def check_availability(
    executor: CachedQueryExecutor,
    *,
    equipment_id: str,
    start_date: date,
    end_date: date,
) -> bool:
    """Read-only availability lookup for display purposes.

    May be answered from cache. Never use the result to decide a write;
    create/confirm re-check under lock.
    """
    _validate_range(start_date, end_date)
    rows = executor.execute(
        _CONFLICT_QUERY,
        (equipment_id, list(BLOCKING_STATUSES), start_date, end_date),
        QueryOptions(
            cache=True,
            cache_key=availability_cache_key(equipment_id, start_date, end_date),
            cache_ttl=AVAILABILITY_CACHE_TTL,
        ),
    )
    return int(rows[0]["conflicts"]) == 0 if rows else True


def equipment_calendar(
    executor: CachedQueryExecutor,
    *,
    equipment_id: str,
    year: int,
    month: int,
) -> list[dict[str, Any]]:
    """Bookings occupying the equipment during one calendar month."""
    if not 1 <= month <= 12:
        raise ValueError("month must be between 1 and 12")
    first = date(year, month, 1)
    last = date(year, month, calendar.monthrange(year, month)[1])
    return list_equipment_bookings_between(
        executor,
        equipment_id=equipment_id,
        start_date=first,
        end_date=last,
        statuses=CALENDAR_STATUSES,
        cache_key=f"bookings:calendar:{equipment_id}:{year:04d}-{month:02d}",
        cache_ttl=CALENDAR_CACHE_TTL,
    )

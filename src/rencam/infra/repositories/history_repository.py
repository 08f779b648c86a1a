"""Booking status history - append-only audit log.

Rows are only ever inserted. The table carries a trigger that rejects
UPDATE and DELETE, so nothing here offers either.
"""

from __future__ import annotations

from rencam.domain.models import BookingStatus, StatusChange
from rencam.infra.executor import CachedQueryExecutor, QueryOptions, Transaction

HISTORY_COLUMNS = "id, booking_id, from_status, to_status, changed_by, reason, created_at"


def append_status_change(
    tx: Transaction,
    *,
    booking_id: str,
    from_status: BookingStatus | None,
    to_status: BookingStatus,
    changed_by: str | None,
    reason: str | None,
) -> StatusChange:
    row = tx.fetchone(
        f"""
        INSERT INTO booking_status_history (
            booking_id, from_status, to_status, changed_by, reason
        )
        VALUES (%s, %s, %s, %s, %s)
        RETURNING {HISTORY_COLUMNS}
        """,
        (
            booking_id,
            from_status.value if from_status is not None else None,
            to_status.value,
            changed_by,
            reason,
        ),
    )
    return StatusChange.from_row(row)


def list_status_history(
    executor: CachedQueryExecutor,
    booking_id: str,
    *,
    cache: bool = True,
) -> list[StatusChange]:
    """All transitions of a booking, oldest first."""
    rows = executor.execute(
        f"""
        SELECT {HISTORY_COLUMNS}
        FROM booking_status_history
        WHERE booking_id = %s
        ORDER BY created_at ASC, seq ASC
        """,
        (booking_id,),
        QueryOptions(cache=cache, cache_key=f"booking_status_history:booking:{booking_id}"),
    )
    return [StatusChange.from_row(row) for row in rows]

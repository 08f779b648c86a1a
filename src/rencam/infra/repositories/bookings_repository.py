"""Bookings repository - persistence for booking records.

Uses raw SQL with psycopg2 (no ORM). Listing goes through a closed
BookingQuery: sort columns and filters are enumerated, never built from
caller-supplied strings.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Literal

from rencam.domain.models import (
    Booking,
    BookingRequest,
    BookingStatus,
    PaymentStatus,
    PriceBreakdown,
)
from rencam.infra.executor import CachedQueryExecutor, QueryOptions, Transaction
from rencam.infra.repositories.base import EntityReader

BOOKING_COLUMNS = """
    id, booking_reference, renter_id, lender_id, equipment_id,
    start_date, end_date, total_days, daily_rate, subtotal,
    service_fee, insurance_fee, security_deposit, total_amount,
    status, payment_status, payment_id, pickup_method, special_instructions,
    created_at, updated_at, confirmed_at, completed_at
"""

LIST_CACHE_TTL = 180

bookings = EntityReader("bookings", BOOKING_COLUMNS, Booking.from_row, ttl=300)


class BookingSort(str, Enum):
    CREATED_AT = "created_at"
    START_DATE = "start_date"
    TOTAL_AMOUNT = "total_amount"


_ROLE_COLUMNS = {"renter": "renter_id", "lender": "lender_id"}


@dataclass(frozen=True)
class BookingQuery:
    """Typed options for listing a user's bookings."""

    party_id: str
    role: Literal["renter", "lender"] = "renter"
    status: BookingStatus | None = None
    equipment_id: str | None = None
    sort: BookingSort = BookingSort.CREATED_AT
    descending: bool = True
    limit: int = 20
    offset: int = 0

    def __post_init__(self) -> None:
        if self.role not in _ROLE_COLUMNS:
            raise ValueError(f"role must be one of {sorted(_ROLE_COLUMNS)}")
        if not 1 <= self.limit <= 100:
            raise ValueError("limit must be between 1 and 100")
        if self.offset < 0:
            raise ValueError("offset must be >= 0")

    def cache_suffix(self) -> str:
        status = self.status.value if self.status else "*"
        return (
            f"{self.party_id}:{self.role}:{status}:{self.equipment_id or '*'}:"
            f"{self.sort.value}:{'desc' if self.descending else 'asc'}"
        )


def insert_booking(
    tx: Transaction,
    *,
    reference: str,
    renter_id: str,
    lender_id: str,
    request: BookingRequest,
    breakdown: PriceBreakdown,
) -> Booking:
    """Insert a booking in status pending / payment pending.

    total_days is a generated column; it is never written.
    """
    row = tx.fetchone(
        f"""
        INSERT INTO bookings (
            booking_reference, renter_id, lender_id, equipment_id,
            start_date, end_date, daily_rate, subtotal,
            service_fee, insurance_fee, security_deposit, total_amount,
            status, payment_status, pickup_method, special_instructions
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        RETURNING {BOOKING_COLUMNS}
        """,
        (
            reference,
            renter_id,
            lender_id,
            request.equipment_id,
            request.start_date,
            request.end_date,
            breakdown.daily_rate,
            breakdown.subtotal,
            breakdown.service_fee,
            breakdown.insurance_fee,
            breakdown.deposit,
            breakdown.total,
            BookingStatus.PENDING.value,
            PaymentStatus.PENDING.value,
            request.pickup_method,
            request.special_instructions,
        ),
    )
    return Booking.from_row(row)


def set_status(tx: Transaction, booking_id: str, status: BookingStatus) -> Booking:
    """Write the new status, stamping confirmed_at / completed_at when entering those states."""
    row = tx.fetchone(
        f"""
        UPDATE bookings
        SET status = %s,
            confirmed_at = CASE WHEN %s = 'confirmed' THEN now() ELSE confirmed_at END,
            completed_at = CASE WHEN %s = 'completed' THEN now() ELSE completed_at END,
            updated_at = now()
        WHERE id = %s
        RETURNING {BOOKING_COLUMNS}
        """,
        (status.value, status.value, status.value, booking_id),
    )
    if row is None:
        raise RuntimeError(f"Booking {booking_id} vanished during status update")
    return Booking.from_row(row)


def set_payment_status(
    tx: Transaction,
    booking_id: str,
    payment_status: PaymentStatus,
    payment_id: str | None = None,
) -> Booking | None:
    row = tx.fetchone(
        f"""
        UPDATE bookings
        SET payment_status = %s,
            payment_id = COALESCE(%s, payment_id),
            updated_at = now()
        WHERE id = %s
        RETURNING {BOOKING_COLUMNS}
        """,
        (payment_status.value, payment_id, booking_id),
    )
    return Booking.from_row(row) if row is not None else None


def list_bookings(
    executor: CachedQueryExecutor,
    query: BookingQuery,
) -> tuple[list[Booking], int]:
    """Page through a renter's or lender's bookings.

    Returns:
        Tuple of (bookings on this page, total matching bookings).
    """
    conditions = [f"{_ROLE_COLUMNS[query.role]} = %s"]
    params: list[Any] = [query.party_id]

    if query.status is not None:
        conditions.append("status = %s")
        params.append(query.status.value)

    if query.equipment_id is not None:
        conditions.append("equipment_id = %s")
        params.append(query.equipment_id)

    where = " AND ".join(conditions)
    direction = "DESC" if query.descending else "ASC"
    suffix = query.cache_suffix()

    count_rows = executor.execute(
        f"SELECT COUNT(*) AS total FROM bookings WHERE {where}",
        params,
        QueryOptions(cache=True, cache_key=f"bookings:count:{suffix}", cache_ttl=LIST_CACHE_TTL),
    )
    total = int(count_rows[0]["total"]) if count_rows else 0

    rows = executor.execute(
        f"""
        SELECT {BOOKING_COLUMNS}
        FROM bookings
        WHERE {where}
        ORDER BY {query.sort.value} {direction}, id
        LIMIT %s OFFSET %s
        """,
        [*params, query.limit, query.offset],
        QueryOptions(
            cache=True,
            cache_key=f"bookings:list:{suffix}:{query.limit}:{query.offset}",
            cache_ttl=LIST_CACHE_TTL,
        ),
    )
    return [Booking.from_row(row) for row in rows], total


def list_equipment_bookings_between(
    executor: CachedQueryExecutor,
    *,
    equipment_id: str,
    start_date: date,
    end_date: date,
    statuses: tuple[str, ...],
    cache_key: str,
    cache_ttl: int,
) -> list[dict[str, Any]]:
    """Bookings of one equipment whose inclusive range overlaps [start_date, end_date]."""
    return executor.execute(
        """
        SELECT id, booking_reference, start_date, end_date, status
        FROM bookings
        WHERE equipment_id = %s
          AND status = ANY(%s)
          AND NOT (end_date < %s OR start_date > %s)
        ORDER BY start_date
        """,
        (equipment_id, list(statuses), start_date, end_date),
        QueryOptions(cache=True, cache_key=cache_key, cache_ttl=cache_ttl),
    )

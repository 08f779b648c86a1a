"""Shared test helper functions for booking engine tests.

Plain functions and fakes, importable by conftest.py and test modules.
These are NOT fixtures.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import replace
from datetime import date, datetime, timezone
from decimal import Decimal
from unittest.mock import MagicMock

from rencam.domain.models import (
    Booking,
    BookingStatus,
    Equipment,
    EquipmentStatus,
    PaymentStatus,
)

EQUIPMENT_ID = "3f1c9a2e-8d4b-4c1a-9e2f-0a1b2c3d4e5f"
BOOKING_ID = "9b2d7c41-1e3f-4a5b-8c6d-7e8f9a0b1c2d"
OWNER_ID = "lender-1"
RENTER_ID = "renter-1"


class FakePool:
    """Stands in for ConnectionPool: one mock connection, counts checkouts."""

    def __init__(self, cursor: MagicMock) -> None:
        self.cursor = cursor
        self.conn = MagicMock(name="conn")
        self.conn.closed = 0
        self.conn.cursor.return_value.__enter__.return_value = cursor
        self.checkouts = 0
        self.opened = False

    @contextmanager
    def connection(self):
        self.checkouts += 1
        yield self.conn

    def open(self) -> None:
        self.opened = True

    def close(self) -> None:
        self.opened = False

    def stats(self) -> dict[str, int]:
        return {"min": 1, "max": 1, "in_use": 0, "waiting": 0}


def set_result(cursor: MagicMock, columns: list[str], rows: list[tuple]) -> None:
    """Make the mock cursor return ``rows`` for the next read."""
    cursor.description = [(c,) for c in columns]
    cursor.fetchall.return_value = rows
    cursor.fetchone.return_value = rows[0] if rows else None


def make_equipment(**overrides) -> Equipment:
    equipment = Equipment(
        id=EQUIPMENT_ID,
        owner_id=OWNER_ID,
        daily_rate=Decimal("100.00"),
        security_deposit=Decimal("500.00"),
        min_rental_days=1,
        max_rental_days=30,
        status=EquipmentStatus.ACTIVE,
        name="Sony A7 IV",
    )
    return replace(equipment, **overrides)


def make_booking(**overrides) -> Booking:
    booking = Booking(
        id=BOOKING_ID,
        booking_reference="RC-2026-291-4F0A9C",
        renter_id=RENTER_ID,
        lender_id=OWNER_ID,
        equipment_id=EQUIPMENT_ID,
        start_date=date(2026, 11, 10),
        end_date=date(2026, 11, 12),
        total_days=3,
        daily_rate=Decimal("100.00"),
        subtotal=Decimal("300.00"),
        service_fee=Decimal("15.00"),
        insurance_fee=Decimal("9.00"),
        security_deposit=Decimal("500.00"),
        total_amount=Decimal("824.00"),
        status=BookingStatus.PENDING,
        payment_status=PaymentStatus.PENDING,
        created_at=datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc),
    )
    return replace(booking, **overrides)


def booking_row(booking: Booking) -> dict:
    """Row dict as the executor would return it for ``booking``."""
    return {
        "id": booking.id,
        "booking_reference": booking.booking_reference,
        "renter_id": booking.renter_id,
        "lender_id": booking.lender_id,
        "equipment_id": booking.equipment_id,
        "start_date": booking.start_date,
        "end_date": booking.end_date,
        "total_days": booking.total_days,
        "daily_rate": booking.daily_rate,
        "subtotal": booking.subtotal,
        "service_fee": booking.service_fee,
        "insurance_fee": booking.insurance_fee,
        "security_deposit": booking.security_deposit,
        "total_amount": booking.total_amount,
        "status": booking.status.value,
        "payment_status": booking.payment_status.value,
        "payment_id": booking.payment_id,
        "pickup_method": booking.pickup_method,
        "special_instructions": booking.special_instructions,
        "created_at": booking.created_at,
        "updated_at": booking.updated_at,
        "confirmed_at": booking.confirmed_at,
        "completed_at": booking.completed_at,
    }

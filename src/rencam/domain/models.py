"""Booking engine value types.

Rows come back from the executor as dicts; the from_row constructors are
the single place that knows the column names.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Literal


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"
    FAILED = "failed"


class EquipmentStatus(str, Enum):
    ACTIVE = "active"
    RENTED = "rented"
    MAINTENANCE = "maintenance"
    INACTIVE = "inactive"


PickupMethod = Literal["delivery", "pickup", "meetup"]


def _money(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value if value is not None else "0"))


def _str_or_none(value: Any) -> str | None:
    return str(value) if value is not None else None


@dataclass(frozen=True)
class Equipment:
    id: str
    owner_id: str
    daily_rate: Decimal
    security_deposit: Decimal
    min_rental_days: int
    max_rental_days: int
    status: EquipmentStatus
    name: str | None = None
    total_bookings: int = 0
    total_revenue: Decimal = Decimal("0")
    views_count: int = 0

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Equipment":
        return cls(
            id=str(row["id"]),
            owner_id=str(row["owner_id"]),
            daily_rate=_money(row["daily_rate"]),
            security_deposit=_money(row.get("security_deposit")),
            min_rental_days=int(row.get("min_rental_days") or 1),
            max_rental_days=int(row.get("max_rental_days") or 30),
            status=EquipmentStatus(row["status"]),
            name=row.get("name"),
            total_bookings=int(row.get("total_bookings") or 0),
            total_revenue=_money(row.get("total_revenue")),
            views_count=int(row.get("views_count") or 0),
        )


@dataclass(frozen=True)
class BookingRequest:
    """What a renter asks for. Dates are inclusive."""

    equipment_id: str
    start_date: date
    end_date: date
    pickup_method: PickupMethod | None = None
    special_instructions: str | None = None


@dataclass(frozen=True)
class PriceBreakdown:
    daily_rate: Decimal
    total_days: int
    subtotal: Decimal
    service_fee: Decimal
    insurance_fee: Decimal
    deposit: Decimal
    total: Decimal


@dataclass(frozen=True)
class Booking:
    id: str
    booking_reference: str
    renter_id: str
    lender_id: str
    equipment_id: str
    start_date: date
    end_date: date
    total_days: int
    daily_rate: Decimal
    subtotal: Decimal
    service_fee: Decimal
    insurance_fee: Decimal
    security_deposit: Decimal
    total_amount: Decimal
    status: BookingStatus
    payment_status: PaymentStatus
    pickup_method: str | None = None
    special_instructions: str | None = None
    payment_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    confirmed_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Booking":
        return cls(
            id=str(row["id"]),
            booking_reference=row["booking_reference"],
            renter_id=str(row["renter_id"]),
            lender_id=str(row["lender_id"]),
            equipment_id=str(row["equipment_id"]),
            start_date=row["start_date"],
            end_date=row["end_date"],
            total_days=int(row["total_days"]),
            daily_rate=_money(row["daily_rate"]),
            subtotal=_money(row["subtotal"]),
            service_fee=_money(row["service_fee"]),
            insurance_fee=_money(row["insurance_fee"]),
            security_deposit=_money(row["security_deposit"]),
            total_amount=_money(row["total_amount"]),
            status=BookingStatus(row["status"]),
            payment_status=PaymentStatus(row["payment_status"]),
            pickup_method=row.get("pickup_method"),
            special_instructions=row.get("special_instructions"),
            payment_id=row.get("payment_id"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
            confirmed_at=row.get("confirmed_at"),
            completed_at=row.get("completed_at"),
        )


@dataclass(frozen=True)
class StatusChange:
    """One row of the append-only booking status history."""

    id: str
    booking_id: str
    from_status: BookingStatus | None
    to_status: BookingStatus
    changed_by: str | None
    reason: str | None
    created_at: datetime

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "StatusChange":
        from_status = row.get("from_status")
        return cls(
            id=str(row["id"]),
            booking_id=str(row["booking_id"]),
            from_status=BookingStatus(from_status) if from_status else None,
            to_status=BookingStatus(row["to_status"]),
            changed_by=_str_or_none(row.get("changed_by")),
            reason=row.get("reason"),
            created_at=row["created_at"],
        )


@dataclass(frozen=True)
class CancellationResult:
    booking: Booking
    refund_amount: Decimal
    days_until_start: int
    pending_refund_id: str | None = None

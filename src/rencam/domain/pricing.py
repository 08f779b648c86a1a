"""Booking price calculation.

subtotal = daily_rate * days
service fee 5%, insurance fee 3%, both rounded half-up to cents
total = subtotal + fees + security deposit (snapshotted at booking time)
"""

from __future__ import annotations

from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from rencam.domain.errors import InvalidDuration
from rencam.domain.models import Equipment, PriceBreakdown

SERVICE_FEE_RATE = Decimal("0.05")
INSURANCE_FEE_RATE = Decimal("0.03")

_CENT = Decimal("0.01")


def round2(amount: Decimal) -> Decimal:
    """Round to two decimal places, half-up."""
    return amount.quantize(_CENT, rounding=ROUND_HALF_UP)


def rental_days(start_date: date, end_date: date) -> int:
    """Inclusive day count for a rental.

    Raises:
        InvalidDuration: If end_date is before start_date.
    """
    if end_date < start_date:
        raise InvalidDuration(
            f"End date {end_date.isoformat()} is before start date {start_date.isoformat()}"
        )
    return (end_date - start_date).days + 1


def price(equipment: Equipment, total_days: int) -> PriceBreakdown:
    """Compute the financial terms of renting ``equipment`` for ``total_days``.

    Raises:
        InvalidDuration: If total_days is outside the equipment's
            [min_rental_days, max_rental_days] range.
    """
    if total_days < 1:
        raise InvalidDuration("Rental period must be at least 1 day")
    if total_days < equipment.min_rental_days:
        raise InvalidDuration(
            f"Minimum rental period is {equipment.min_rental_days} days"
        )
    if total_days > equipment.max_rental_days:
        raise InvalidDuration(
            f"Maximum rental period is {equipment.max_rental_days} days"
        )

    subtotal = round2(equipment.daily_rate * total_days)
    service_fee = round2(subtotal * SERVICE_FEE_RATE)
    insurance_fee = round2(subtotal * INSURANCE_FEE_RATE)
    deposit = round2(equipment.security_deposit)

    return PriceBreakdown(
        daily_rate=equipment.daily_rate,
        total_days=total_days,
        subtotal=subtotal,
        service_fee=service_fee,
        insurance_fee=insurance_fee,
        deposit=deposit,
        total=subtotal + service_fee + insurance_fee + deposit,
    )

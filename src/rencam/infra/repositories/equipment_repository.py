"""Equipment repository - the slice of the equipment store the engine needs.

Uses raw SQL with psycopg2 (no ORM).
"""

from __future__ import annotations

from decimal import Decimal

from rencam.domain.models import Equipment
from rencam.infra.executor import Transaction
from rencam.infra.repositories.base import EntityReader

EQUIPMENT_COLUMNS = """
    id, owner_id, name, daily_rate, security_deposit,
    min_rental_days, max_rental_days, status,
    total_bookings, total_revenue, views_count
"""

equipment = EntityReader("equipment", EQUIPMENT_COLUMNS, Equipment.from_row)


def lock_equipment(tx: Transaction, equipment_id: str) -> Equipment | None:
    """Lock the equipment row for the rest of the transaction.

    Every check-then-write sequence on an equipment's bookings goes through
    this lock, which serializes concurrent requests for the same item.
    """
    return equipment.get_in(tx, equipment_id, lock=True)


def record_completed_booking(
    tx: Transaction,
    *,
    equipment_id: str,
    amount: Decimal,
) -> None:
    """Bump total_bookings by one and total_revenue by ``amount``.

    Single UPDATE so both counters move together or not at all.

    Raises:
        RuntimeError: If the equipment row no longer exists.
    """
    rowcount = tx.execute(
        """
        UPDATE equipment
        SET total_bookings = total_bookings + 1,
            total_revenue = total_revenue + %s,
            updated_at = now()
        WHERE id = %s
        """,
        (amount, equipment_id),
    )
    if rowcount != 1:
        raise RuntimeError(f"Equipment {equipment_id} vanished while completing a booking")

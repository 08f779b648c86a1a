"""Pending refunds repository - hand-off of computed refunds to the payment collaborator.

The engine records how much to refund and under which rule; moving money
is the payment collaborator's job.

Uses raw SQL with psycopg2 (no ORM).
"""

from __future__ import annotations

import json
from decimal import Decimal
from typing import Any

from rencam.infra.executor import Transaction


def insert_pending_refund(
    tx: Transaction,
    *,
    booking_id: str,
    amount: Decimal,
    policy_applied: dict[str, Any],
) -> str:
    """Insert a new pending refund record.

    Args:
        tx: Open transaction.
        booking_id: Booking being refunded.
        amount: Refund amount in platform currency.
        policy_applied: Snapshot of the refund rule used.

    Returns:
        UUID string of the created pending refund.
    """
    row = tx.fetchone(
        """
        INSERT INTO pending_refunds (booking_id, amount, policy_applied)
        VALUES (%s, %s, %s::jsonb)
        RETURNING id
        """,
        (booking_id, amount, json.dumps(policy_applied, default=str)),
    )
    return str(row["id"])


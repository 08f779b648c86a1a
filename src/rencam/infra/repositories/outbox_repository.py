"""Outbox repository - events for the notification and payment collaborators.

Events are written in the same transaction as the change they describe,
so a rolled-back transition never announces itself. Delivery is someone
else's job; from the engine's point of view emission is fire-and-forget.

Uses raw SQL with psycopg2 (no ORM).
"""

from __future__ import annotations

import json
from typing import Any

from rencam.infra.executor import Transaction

BOOKING_CREATED = "BOOKING_CREATED"
BOOKING_STATUS_CHANGED = "BOOKING_STATUS_CHANGED"
BOOKING_CANCELLED = "BOOKING_CANCELLED"
BOOKING_PAYMENT_UPDATED = "BOOKING_PAYMENT_UPDATED"


def emit_event(
    tx: Transaction,
    *,
    event_type: str,
    aggregate_type: str,
    aggregate_id: str,
    payload: dict[str, Any] | None = None,
    correlation_id: str | None = None,
) -> int:
    """Emit an event to the outbox.

    Args:
        tx: Open transaction.
        event_type: Event type (e.g., BOOKING_CREATED).
        aggregate_type: Aggregate type (e.g., booking).
        aggregate_id: Aggregate ID (e.g., booking UUID).
        payload: Optional JSON payload (identifiers and amounts only, no PII).
        correlation_id: Optional correlation ID for tracing.

    Returns:
        The generated event ID.
    """
    payload_json = json.dumps(payload, default=str) if payload else None

    row = tx.fetchone(
        """
        INSERT INTO outbox_events (
            event_type, aggregate_type, aggregate_id, payload, correlation_id
        )
        VALUES (%s, %s, %s, %s::jsonb, %s)
        RETURNING id
        """,
        (event_type, aggregate_type, aggregate_id, payload_json, correlation_id),
    )
    return row["id"]


def emit_booking_event(
    tx: Transaction,
    event_type: str,
    *,
    booking_id: str,
    equipment_id: str,
    payload: dict[str, Any],
    correlation_id: str | None = None,
) -> int:
    return emit_event(
        tx,
        event_type=event_type,
        aggregate_type="booking",
        aggregate_id=booking_id,
        payload={"booking_id": booking_id, "equipment_id": equipment_id, **payload},
        correlation_id=correlation_id,
    )

"""Cancel booking domain logic - transactional cancellation with refund calculation.

Orchestrates cancellation inside a single DB transaction:
lock → validate → calculate refund → update status → append history → record refund → emit event.

Refund rule, by whole days from today until the start date:
    more than 7 days   full total_amount
    more than 1 day    50% of total_amount
    otherwise          security_deposit only
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any

from rencam.domain.errors import BookingNotFound, InvalidTransition
from rencam.domain.lifecycle import apply_transition
from rencam.domain.models import Booking, BookingStatus, CancellationResult
from rencam.domain.pricing import round2
from rencam.infra.executor import CachedQueryExecutor, Transaction
from rencam.infra.repositories.bookings_repository import bookings
from rencam.infra.repositories.outbox_repository import BOOKING_CANCELLED, emit_booking_event
from rencam.infra.repositories.pending_refunds_repository import insert_pending_refund
from rencam.infra.time import utc_today

FULL_REFUND_AFTER_DAYS = 7
PARTIAL_REFUND_AFTER_DAYS = 1
PARTIAL_REFUND_RATE = Decimal("0.5")

CANCELLABLE_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED})


def days_until_start(start_date: date, today: date) -> int:
    """Whole days from today to start_date; negative once the rental has begun."""
    return (start_date - today).days


def calculate_refund(booking: Booking, today: date) -> tuple[Decimal, dict[str, Any]]:
    """Refund for cancelling ``booking`` on ``today``.

    Returns:
        Tuple of (refund amount, snapshot of the rule that produced it).
    """
    days = days_until_start(booking.start_date, today)

    if days > FULL_REFUND_AFTER_DAYS:
        rule = "full"
        amount = booking.total_amount
    elif days > PARTIAL_REFUND_AFTER_DAYS:
        rule = "partial"
        amount = round2(booking.total_amount * PARTIAL_REFUND_RATE)
    else:
        rule = "deposit_only"
        amount = booking.security_deposit

    policy = {
        "rule": rule,
        "days_until_start": days,
        "total_amount": str(booking.total_amount),
        "security_deposit": str(booking.security_deposit),
    }
    return amount, policy


def cancel_booking(
    executor: CachedQueryExecutor,
    booking_id: str,
    *,
    cancelled_by: str,
    reason: str | None = None,
    today: date | None = None,
    correlation_id: str | None = None,
) -> CancellationResult:
    """Cancel a pending or confirmed booking with refund calculation.

    This function:
    1. Locks the booking with FOR UPDATE
    2. Validates status is pending or confirmed
    3. Calculates the refund amount
    4. Moves the booking to cancelled and appends the history row
    5. Inserts a pending refund (if refund > 0)
    6. Emits BOOKING_CANCELLED outbox event

    Args:
        booking_id: Booking UUID.
        cancelled_by: Who initiated the cancellation.
        reason: Free-text cancellation reason, stored in history.
        today: Reference date for the refund window; UTC today if None.
        correlation_id: Optional correlation ID for tracing.

    Raises:
        BookingNotFound: If the booking doesn't exist.
        InvalidTransition: If the booking is active, completed, cancelled or disputed.
    """
    today = today or utc_today()

    def _cancel(tx: Transaction) -> CancellationResult:
        current = bookings.get_in(tx, booking_id, lock=True)
        if current is None:
            raise BookingNotFound(booking_id)

        if current.status not in CANCELLABLE_STATUSES:
            raise InvalidTransition(
                booking_id, current.status.value, BookingStatus.CANCELLED.value
            )

        refund_amount, policy = calculate_refund(current, today)

        cancelled = apply_transition(
            tx,
            booking_id,
            BookingStatus.CANCELLED,
            changed_by=cancelled_by,
            reason=reason,
            current=current,
            correlation_id=correlation_id,
        )

        pending_refund_id = None
        if refund_amount > 0:
            pending_refund_id = insert_pending_refund(
                tx,
                booking_id=booking_id,
                amount=refund_amount,
                policy_applied=policy,
            )

        emit_booking_event(
            tx,
            BOOKING_CANCELLED,
            booking_id=booking_id,
            equipment_id=current.equipment_id,
            payload={
                "refund_amount": str(refund_amount),
                "refund_rule": policy["rule"],
                "pending_refund_id": pending_refund_id,
                "cancelled_by": cancelled_by,
            },
            correlation_id=correlation_id,
        )

        return CancellationResult(
            booking=cancelled,
            refund_amount=refund_amount,
            days_until_start=policy["days_until_start"],
            pending_refund_id=pending_refund_id,
        )

    return executor.transaction(_cancel)

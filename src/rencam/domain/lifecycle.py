"""Booking lifecycle - creation and status transitions.

State machine:

    pending ──> confirmed ──> active ──> completed
       │            │            │
       ├──> cancelled <──┘       │
       └──> disputed <───────────┘   (from any non-terminal state)

    disputed ──> completed | cancelled   (resolution is decided elsewhere)

completed and cancelled are terminal.

Every change runs in one transaction:
lock → validate → update booking → append history → (counters) → emit event.
Anything failing rolls the whole step back.
"""

from __future__ import annotations

import secrets
from datetime import date

import psycopg2.errors

from rencam.domain.availability import assert_available
from rencam.domain.errors import (
    BookingNotFound,
    EquipmentNotFound,
    EquipmentUnavailable,
    InvalidTransition,
    SelfBookingForbidden,
)
from rencam.domain.models import (
    Booking,
    BookingRequest,
    BookingStatus,
    EquipmentStatus,
    PaymentStatus,
)
from rencam.domain.pricing import price, rental_days
from rencam.infra.executor import CachedQueryExecutor, Transaction
from rencam.infra.repositories import bookings_repository as bookings_repo
from rencam.infra.repositories.equipment_repository import (
    lock_equipment,
    record_completed_booking,
)
from rencam.infra.repositories.history_repository import append_status_change
from rencam.infra.repositories.outbox_repository import (
    BOOKING_CREATED,
    BOOKING_PAYMENT_UPDATED,
    BOOKING_STATUS_CHANGED,
    emit_booking_event,
)
from rencam.infra.time import utc_today

S = BookingStatus

ALLOWED_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    S.PENDING: frozenset({S.CONFIRMED, S.CANCELLED, S.DISPUTED}),
    S.CONFIRMED: frozenset({S.ACTIVE, S.CANCELLED, S.DISPUTED}),
    S.ACTIVE: frozenset({S.COMPLETED, S.DISPUTED}),
    S.DISPUTED: frozenset({S.COMPLETED, S.CANCELLED}),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset({S.COMPLETED, S.CANCELLED})


def can_transition(from_status: BookingStatus, to_status: BookingStatus) -> bool:
    return to_status in ALLOWED_TRANSITIONS[from_status]


def generate_reference(today: date | None = None) -> str:
    """Human-readable booking reference, e.g. RC-2026-291-4F0A9C."""
    today = today or utc_today()
    day_of_year = today.timetuple().tm_yday
    return f"RC-{today.year:04d}-{day_of_year:03d}-{secrets.token_hex(3).upper()}"


def create_booking(
    executor: CachedQueryExecutor,
    renter_id: str,
    request: BookingRequest,
    *,
    correlation_id: str | None = None,
) -> Booking:
    """Create a pending booking.

    This function, in one transaction:
    1. Locks the equipment row (serializes concurrent requests for it)
    2. Rejects missing/inactive equipment and self-booking
    3. Prices the rental (rejects durations outside min/max days)
    4. Checks availability on the same connection
    5. Inserts the booking (status pending, payment pending)
    6. Appends the initial history row and emits BOOKING_CREATED

    Raises:
        EquipmentNotFound, SelfBookingForbidden, InvalidDuration,
        EquipmentUnavailable, plus the executor's infrastructure errors.
    """

    def _create(tx: Transaction) -> Booking:
        equipment = lock_equipment(tx, request.equipment_id)
        if equipment is None or equipment.status != EquipmentStatus.ACTIVE:
            raise EquipmentNotFound(request.equipment_id)

        if equipment.owner_id == str(renter_id):
            raise SelfBookingForbidden(equipment.id)

        breakdown = price(equipment, rental_days(request.start_date, request.end_date))

        assert_available(
            tx,
            equipment_id=equipment.id,
            start_date=request.start_date,
            end_date=request.end_date,
        )

        booking = bookings_repo.insert_booking(
            tx,
            reference=generate_reference(),
            renter_id=str(renter_id),
            lender_id=equipment.owner_id,
            request=request,
            breakdown=breakdown,
        )

        append_status_change(
            tx,
            booking_id=booking.id,
            from_status=None,
            to_status=S.PENDING,
            changed_by=str(renter_id),
            reason="created",
        )

        emit_booking_event(
            tx,
            BOOKING_CREATED,
            booking_id=booking.id,
            equipment_id=booking.equipment_id,
            payload={
                "booking_reference": booking.booking_reference,
                "renter_id": booking.renter_id,
                "lender_id": booking.lender_id,
                "start_date": booking.start_date.isoformat(),
                "end_date": booking.end_date.isoformat(),
                "total_amount": str(booking.total_amount),
            },
            correlation_id=correlation_id,
        )

        tx.invalidate_after_commit("equipment:*")
        return booking

    return executor.transaction(_create)


def apply_transition(
    tx: Transaction,
    booking_id: str,
    to_status: BookingStatus,
    *,
    changed_by: str | None,
    reason: str | None = None,
    current: Booking | None = None,
    correlation_id: str | None = None,
) -> Booking:
    """Move a booking to ``to_status`` inside an open transaction.

    Shared by transition_booking and the cancellation flow so both leave
    the same audit trail.

    Args:
        current: The booking row if the caller already locked it.

    Raises:
        BookingNotFound, InvalidTransition, EquipmentUnavailable (on confirm).
    """
    if current is None:
        current = bookings_repo.bookings.get_in(tx, booking_id, lock=True)
        if current is None:
            raise BookingNotFound(booking_id)

    if not can_transition(current.status, to_status):
        raise InvalidTransition(booking_id, current.status.value, to_status.value)

    if to_status == S.CONFIRMED:
        # Pending bookings do not block each other; the first one confirmed wins.
        lock_equipment(tx, current.equipment_id)
        assert_available(
            tx,
            equipment_id=current.equipment_id,
            start_date=current.start_date,
            end_date=current.end_date,
            exclude_booking_id=current.id,
        )

    try:
        updated = bookings_repo.set_status(tx, booking_id, to_status)
    except psycopg2.errors.ExclusionViolation as exc:
        raise EquipmentUnavailable(
            current.equipment_id, current.start_date, current.end_date
        ) from exc

    append_status_change(
        tx,
        booking_id=booking_id,
        from_status=current.status,
        to_status=to_status,
        changed_by=changed_by,
        reason=reason,
    )

    if to_status == S.COMPLETED:
        record_completed_booking(
            tx,
            equipment_id=current.equipment_id,
            amount=current.total_amount,
        )

    emit_booking_event(
        tx,
        BOOKING_STATUS_CHANGED,
        booking_id=booking_id,
        equipment_id=current.equipment_id,
        payload={
            "from_status": current.status.value,
            "to_status": to_status.value,
            "changed_by": changed_by,
        },
        correlation_id=correlation_id,
    )

    tx.invalidate_after_commit("equipment:*")
    return updated


def transition_booking(
    executor: CachedQueryExecutor,
    booking_id: str,
    to_status: BookingStatus,
    *,
    changed_by: str | None,
    reason: str | None = None,
    correlation_id: str | None = None,
) -> Booking:
    """Apply one legal status change in its own transaction."""
    return executor.transaction(
        lambda tx: apply_transition(
            tx,
            booking_id,
            to_status,
            changed_by=changed_by,
            reason=reason,
            correlation_id=correlation_id,
        )
    )


def update_payment_status(
    executor: CachedQueryExecutor,
    booking_id: str,
    payment_status: PaymentStatus,
    *,
    payment_id: str | None = None,
    correlation_id: str | None = None,
) -> Booking:
    """Record what the payment collaborator reports. Does not touch booking status."""

    def _update(tx: Transaction) -> Booking:
        booking = bookings_repo.set_payment_status(tx, booking_id, payment_status, payment_id)
        if booking is None:
            raise BookingNotFound(booking_id)
        emit_booking_event(
            tx,
            BOOKING_PAYMENT_UPDATED,
            booking_id=booking.id,
            equipment_id=booking.equipment_id,
            payload={"payment_status": payment_status.value, "payment_id": payment_id},
            correlation_id=correlation_id,
        )
        return booking

    return executor.transaction(_update)

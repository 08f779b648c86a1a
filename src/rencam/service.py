"""Booking service - the engine's public API.

BookingService wraps one CachedQueryExecutor and exposes the booking
operations callers use. It owns no state besides the executor; construct
it explicitly and share it.

    executor = CachedQueryExecutor.from_settings(load_settings())
    with executor:
        service = BookingService(executor)
        booking = service.create_booking(renter_id, request)
"""

from __future__ import annotations

from datetime import date
from typing import Any

from rencam.domain import availability, cancellation, lifecycle
from rencam.domain.errors import BookingNotFound
from rencam.domain.models import (
    Booking,
    BookingRequest,
    BookingStatus,
    CancellationResult,
    PaymentStatus,
    StatusChange,
)
from rencam.infra.executor import CachedQueryExecutor
from rencam.infra.repositories.bookings_repository import (
    BookingQuery,
    bookings,
    list_bookings,
)
from rencam.infra.repositories.history_repository import list_status_history
from rencam.observability.correlation import get_correlation_id
from rencam.observability.logging import get_logger
from rencam.observability.redaction import safe_log_context

logger = get_logger(__name__)


def _correlation_id() -> str | None:
    return get_correlation_id() or None


class BookingService:
    def __init__(self, executor: CachedQueryExecutor) -> None:
        self.executor = executor

    # ── writes ────────────────────────────────────────────────────────

    def create_booking(self, renter_id: str, request: BookingRequest) -> Booking:
        """Create a pending booking for ``renter_id``.

        Raises:
            EquipmentNotFound, SelfBookingForbidden, InvalidDuration,
            EquipmentUnavailable, PoolExhausted, StoreUnavailable,
            TransactionAborted.
        """
        booking = lifecycle.create_booking(
            self.executor, renter_id, request, correlation_id=_correlation_id()
        )
        logger.info(
            "booking created",
            extra={
                "extra_fields": safe_log_context(
                    booking_id=booking.id,
                    equipment_id=booking.equipment_id,
                    start_date=booking.start_date,
                    end_date=booking.end_date,
                    total_amount=booking.total_amount,
                )
            },
        )
        return booking

    def transition_booking(
        self,
        booking_id: str,
        to_status: BookingStatus,
        changed_by: str | None,
        reason: str | None = None,
    ) -> Booking:
        """Apply one status change. Cancelling this way computes no refund;
        use cancel_booking for that."""
        booking = lifecycle.transition_booking(
            self.executor,
            booking_id,
            to_status,
            changed_by=changed_by,
            reason=reason,
            correlation_id=_correlation_id(),
        )
        logger.info(
            "booking status changed",
            extra={
                "extra_fields": safe_log_context(
                    booking_id=booking.id,
                    to_status=booking.status,
                    changed_by=changed_by,
                    reason=reason,
                )
            },
        )
        return booking

    def cancel_booking(
        self,
        booking_id: str,
        cancelled_by: str,
        reason: str | None = None,
        *,
        today: date | None = None,
    ) -> CancellationResult:
        result = cancellation.cancel_booking(
            self.executor,
            booking_id,
            cancelled_by=cancelled_by,
            reason=reason,
            today=today,
            correlation_id=_correlation_id(),
        )
        logger.info(
            "booking cancelled",
            extra={
                "extra_fields": safe_log_context(
                    booking_id=booking_id,
                    refund_amount=result.refund_amount,
                    days_until_start=result.days_until_start,
                    pending_refund_id=result.pending_refund_id,
                )
            },
        )
        return result

    def update_payment_status(
        self,
        booking_id: str,
        payment_status: PaymentStatus,
        payment_id: str | None = None,
    ) -> Booking:
        booking = lifecycle.update_payment_status(
            self.executor,
            booking_id,
            payment_status,
            payment_id=payment_id,
            correlation_id=_correlation_id(),
        )
        logger.info(
            "booking payment status updated",
            extra={
                "extra_fields": safe_log_context(
                    booking_id=booking_id, payment_status=payment_status
                )
            },
        )
        return booking

    # ── reads ─────────────────────────────────────────────────────────

    def get_booking(self, booking_id: str) -> Booking:
        booking = bookings.get(self.executor, booking_id)
        if booking is None:
            raise BookingNotFound(booking_id)
        return booking

    def list_bookings(self, query: BookingQuery) -> tuple[list[Booking], int]:
        return list_bookings(self.executor, query)

    def get_booking_history(self, booking_id: str) -> list[StatusChange]:
        """Status history, oldest first. Unknown booking raises BookingNotFound."""
        history = list_status_history(self.executor, booking_id)
        if not history:
            # Every booking has at least its creation row.
            self.get_booking(booking_id)
        return history

    def check_availability(self, equipment_id: str, start_date: date, end_date: date) -> bool:
        """Display-only availability; writes re-check under lock."""
        return availability.check_availability(
            self.executor,
            equipment_id=equipment_id,
            start_date=start_date,
            end_date=end_date,
        )

    def equipment_calendar(self, equipment_id: str, year: int, month: int) -> list[dict[str, Any]]:
        return availability.equipment_calendar(
            self.executor, equipment_id=equipment_id, year=year, month=month
        )

    def health(self) -> dict[str, Any]:
        report = self.executor.health_check()
        report["status"] = "ok" if report["database"] else "degraded"
        return report

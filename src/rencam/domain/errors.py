"""Error kinds raised by the booking engine.

Validation errors are raised before any write. Infrastructure errors are
flagged retryable; the engine itself never retries.
"""

from __future__ import annotations

from datetime import date


class BookingEngineError(Exception):
    """Base class for every error the engine surfaces to callers."""

    code = "booking_engine_error"
    retryable = False


class EquipmentNotFound(BookingEngineError):
    """Equipment does not exist or is not bookable (status != active)."""

    code = "equipment_not_found"

    def __init__(self, equipment_id: str) -> None:
        self.equipment_id = equipment_id
        super().__init__(f"Equipment {equipment_id} not found or not available")


class BookingNotFound(BookingEngineError):
    """Booking does not exist."""

    code = "booking_not_found"

    def __init__(self, booking_id: str) -> None:
        self.booking_id = booking_id
        super().__init__(f"Booking {booking_id} not found")


class EquipmentUnavailable(BookingEngineError):
    """Requested range overlaps a confirmed or active booking."""

    code = "equipment_unavailable"

    def __init__(self, equipment_id: str, start_date: date, end_date: date) -> None:
        self.equipment_id = equipment_id
        self.start_date = start_date
        self.end_date = end_date
        super().__init__(
            f"Equipment {equipment_id} is not available "
            f"from {start_date.isoformat()} to {end_date.isoformat()}"
        )


class SelfBookingForbidden(BookingEngineError):
    """Renter is the owner of the equipment."""

    code = "self_booking_forbidden"

    def __init__(self, equipment_id: str) -> None:
        self.equipment_id = equipment_id
        super().__init__("Cannot book your own equipment")


class InvalidDuration(BookingEngineError):
    """Rental length falls outside the equipment's allowed range."""

    code = "invalid_duration"


class InvalidTransition(BookingEngineError):
    """Requested status change is not allowed by the state machine."""

    code = "invalid_transition"

    def __init__(self, booking_id: str, from_status: str, to_status: str) -> None:
        self.booking_id = booking_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Booking {booking_id} cannot move from '{from_status}' to '{to_status}'"
        )


class PoolExhausted(BookingEngineError):
    """No pooled connection became free within the acquire timeout."""

    code = "pool_exhausted"
    retryable = True


class TransactionAborted(BookingEngineError):
    """Store aborted the transaction (statement timeout, serialization failure)."""

    code = "transaction_aborted"
    retryable = True


class StoreUnavailable(BookingEngineError):
    """Relational store could not be reached."""

    code = "store_unavailable"
    retryable = True

"""Booking endpoints.

Thin layer over BookingService: parse the request, call the service,
translate domain errors to HTTP.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Literal
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query
from pydantic import BaseModel, Field

from rencam.api.dependencies import get_service, require_actor
from rencam.api.errors import http_error
from rencam.domain.errors import BookingEngineError
from rencam.domain.models import (
    Booking,
    BookingRequest,
    BookingStatus,
    PaymentStatus,
    StatusChange,
)
from rencam.infra.repositories.bookings_repository import BookingQuery, BookingSort
from rencam.observability.logging import get_logger
from rencam.observability.redaction import safe_log_context
from rencam.service import BookingService


class CreateBookingRequest(BaseModel):
    """Request body for creating a booking. Dates are inclusive."""

    equipment_id: UUID
    start_date: date
    end_date: date
    pickup_method: Literal["delivery", "pickup", "meetup"] | None = None
    special_instructions: str | None = Field(None, max_length=2000)


class TransitionRequest(BaseModel):
    to_status: BookingStatus
    reason: str | None = Field(None, max_length=500)


class CancelBookingRequest(BaseModel):
    """Request body for cancel action."""

    reason: str | None = Field(None, max_length=500)


class PaymentStatusRequest(BaseModel):
    payment_status: PaymentStatus
    payment_id: str | None = None


router = APIRouter(prefix="/bookings", tags=["bookings"])

logger = get_logger(__name__)


def _money(value) -> str:
    return f"{value:.2f}"


def _booking_to_dict(booking: Booking) -> dict[str, Any]:
    """Serialize a booking; money goes out as strings with two decimals."""
    return {
        "id": booking.id,
        "booking_reference": booking.booking_reference,
        "renter_id": booking.renter_id,
        "lender_id": booking.lender_id,
        "equipment_id": booking.equipment_id,
        "start_date": booking.start_date.isoformat(),
        "end_date": booking.end_date.isoformat(),
        "total_days": booking.total_days,
        "daily_rate": _money(booking.daily_rate),
        "subtotal": _money(booking.subtotal),
        "service_fee": _money(booking.service_fee),
        "insurance_fee": _money(booking.insurance_fee),
        "security_deposit": _money(booking.security_deposit),
        "total_amount": _money(booking.total_amount),
        "status": booking.status.value,
        "payment_status": booking.payment_status.value,
        "pickup_method": booking.pickup_method,
        "special_instructions": booking.special_instructions,
        "created_at": booking.created_at.isoformat() if booking.created_at else None,
        "confirmed_at": booking.confirmed_at.isoformat() if booking.confirmed_at else None,
        "completed_at": booking.completed_at.isoformat() if booking.completed_at else None,
    }


def _status_change_to_dict(change: StatusChange) -> dict[str, Any]:
    return {
        "id": change.id,
        "from_status": change.from_status.value if change.from_status else None,
        "to_status": change.to_status.value,
        "changed_by": change.changed_by,
        "reason": change.reason,
        "created_at": change.created_at.isoformat(),
    }


@router.post("", status_code=201)
def create_booking(
    body: CreateBookingRequest,
    actor_id: str = Depends(require_actor),
    service: BookingService = Depends(get_service),
) -> dict:
    """Create a pending booking for the acting renter."""
    request = BookingRequest(
        equipment_id=str(body.equipment_id),
        start_date=body.start_date,
        end_date=body.end_date,
        pickup_method=body.pickup_method,
        special_instructions=body.special_instructions,
    )
    try:
        booking = service.create_booking(actor_id, request)
    except BookingEngineError as exc:
        logger.info(
            "booking rejected",
            extra={
                "extra_fields": safe_log_context(equipment_id=body.equipment_id, code=exc.code)
            },
        )
        raise http_error(exc) from exc
    return _booking_to_dict(booking)


@router.get("")
def list_bookings(
    actor_id: str = Depends(require_actor),
    service: BookingService = Depends(get_service),
    role: Literal["renter", "lender"] = Query("renter"),
    status: BookingStatus | None = Query(None, description="Filter by status"),
    equipment_id: UUID | None = Query(None),
    sort: BookingSort = Query(BookingSort.CREATED_AT),
    descending: bool = Query(True),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
) -> dict:
    """List the acting user's bookings, as renter or as lender."""
    query = BookingQuery(
        party_id=actor_id,
        role=role,
        status=status,
        equipment_id=str(equipment_id) if equipment_id else None,
        sort=sort,
        descending=descending,
        limit=limit,
        offset=offset,
    )
    try:
        items, total = service.list_bookings(query)
    except BookingEngineError as exc:
        raise http_error(exc) from exc
    return {
        "bookings": [_booking_to_dict(b) for b in items],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


@router.get("/{booking_id}")
def get_booking(
    booking_id: UUID = Path(..., description="Booking UUID"),
    service: BookingService = Depends(get_service),
) -> dict:
    try:
        booking = service.get_booking(str(booking_id))
    except BookingEngineError as exc:
        raise http_error(exc) from exc
    return _booking_to_dict(booking)


@router.post("/{booking_id}/transitions")
def transition_booking(
    body: TransitionRequest,
    booking_id: UUID = Path(..., description="Booking UUID"),
    actor_id: str = Depends(require_actor),
    service: BookingService = Depends(get_service),
) -> dict:
    """Move a booking along the state machine.

    Cancelling here records the status change only; refunds go through
    /actions/cancel.
    """
    try:
        booking = service.transition_booking(
            str(booking_id), body.to_status, actor_id, body.reason
        )
    except BookingEngineError as exc:
        raise http_error(exc) from exc
    return _booking_to_dict(booking)


@router.post("/{booking_id}/actions/cancel")
def cancel_booking(
    body: CancelBookingRequest | None = None,
    booking_id: UUID = Path(..., description="Booking UUID"),
    actor_id: str = Depends(require_actor),
    service: BookingService = Depends(get_service),
) -> dict:
    """Cancel a pending or confirmed booking and compute its refund."""
    reason = body.reason if body is not None else None
    try:
        result = service.cancel_booking(str(booking_id), actor_id, reason)
    except BookingEngineError as exc:
        raise http_error(exc) from exc
    return {
        "booking": _booking_to_dict(result.booking),
        "refund_amount": _money(result.refund_amount),
        "days_until_start": result.days_until_start,
        "pending_refund_id": result.pending_refund_id,
    }


@router.post("/{booking_id}/payment-status")
def update_payment_status(
    body: PaymentStatusRequest,
    booking_id: UUID = Path(..., description="Booking UUID"),
    service: BookingService = Depends(get_service),
) -> dict:
    """Record a payment outcome reported by the payment collaborator."""
    try:
        booking = service.update_payment_status(
            str(booking_id), body.payment_status, body.payment_id
        )
    except BookingEngineError as exc:
        raise http_error(exc) from exc
    return _booking_to_dict(booking)


@router.get("/{booking_id}/history")
def get_booking_history(
    booking_id: UUID = Path(..., description="Booking UUID"),
    service: BookingService = Depends(get_service),
) -> dict:
    try:
        history = service.get_booking_history(str(booking_id))
    except BookingEngineError as exc:
        raise http_error(exc) from exc
    return {"history": [_status_change_to_dict(c) for c in history]}

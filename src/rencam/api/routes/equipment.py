"""Equipment availability endpoints (read-only)."""

from __future__ import annotations

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query

from rencam.api.dependencies import get_service
from rencam.api.errors import http_error
from rencam.domain.errors import BookingEngineError
from rencam.service import BookingService

router = APIRouter(prefix="/equipment", tags=["equipment"])


@router.get("/{equipment_id}/availability")
def check_availability(
    equipment_id: UUID = Path(..., description="Equipment UUID"),
    start_date: date = Query(...),
    end_date: date = Query(...),
    service: BookingService = Depends(get_service),
) -> dict:
    """Whether the equipment is free on every day of [start_date, end_date].

    Informational only: a later booking request re-checks under lock.
    """
    try:
        available = service.check_availability(str(equipment_id), start_date, end_date)
    except BookingEngineError as exc:
        raise http_error(exc) from exc
    return {
        "equipment_id": str(equipment_id),
        "start_date": start_date.isoformat(),
        "end_date": end_date.isoformat(),
        "available": available,
    }


@router.get("/{equipment_id}/calendar")
def equipment_calendar(
    equipment_id: UUID = Path(..., description="Equipment UUID"),
    year: int = Query(..., ge=2000, le=2100),
    month: int = Query(..., ge=1, le=12),
    service: BookingService = Depends(get_service),
) -> dict:
    """Bookings occupying the equipment in one month."""
    try:
        rows = service.equipment_calendar(str(equipment_id), year, month)
    except BookingEngineError as exc:
        raise http_error(exc) from exc
    return {
        "equipment_id": str(equipment_id),
        "year": year,
        "month": month,
        "bookings": [
            {
                "id": str(row["id"]),
                "booking_reference": row["booking_reference"],
                "start_date": row["start_date"].isoformat(),
                "end_date": row["end_date"].isoformat(),
                "status": row["status"],
            }
            for row in rows
        ],
    }

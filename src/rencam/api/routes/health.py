"""Health endpoint."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from rencam.api.dependencies import get_service
from rencam.service import BookingService

router = APIRouter()


@router.get("/health")
def health(service: BookingService = Depends(get_service)) -> JSONResponse:
    """Store, cache and pool status. 503 while the store is unreachable."""
    report = service.health()
    status_code = 200 if report["status"] == "ok" else 503
    return JSONResponse(status_code=status_code, content=report)

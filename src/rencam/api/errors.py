"""Domain error → HTTP error mapping.

Routes catch BookingEngineError and re-raise ``http_error(exc)``; nothing
below the route layer knows about HTTP.
"""

from fastapi import HTTPException

from rencam.domain.errors import (
    BookingEngineError,
    BookingNotFound,
    EquipmentNotFound,
    EquipmentUnavailable,
    InvalidDuration,
    InvalidTransition,
    PoolExhausted,
    SelfBookingForbidden,
    StoreUnavailable,
    TransactionAborted,
)

RETRY_AFTER_SECONDS = {
    PoolExhausted: 1,
    TransactionAborted: 1,
    StoreUnavailable: 5,
}

_STATUS_CODES: dict[type[BookingEngineError], int] = {
    EquipmentNotFound: 404,
    BookingNotFound: 404,
    EquipmentUnavailable: 409,
    InvalidTransition: 409,
    SelfBookingForbidden: 400,
    InvalidDuration: 400,
}


def http_error(exc: BookingEngineError) -> HTTPException:
    detail = {"code": exc.code, "message": str(exc)}

    retry_after = RETRY_AFTER_SECONDS.get(type(exc))
    if retry_after is not None:
        return HTTPException(
            status_code=503,
            detail=detail,
            headers={"Retry-After": str(retry_after)},
        )

    return HTTPException(status_code=_STATUS_CODES.get(type(exc), 500), detail=detail)

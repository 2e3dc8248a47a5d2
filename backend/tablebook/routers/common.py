import re
from typing import Any, Optional

from fastapi import HTTPException, status

from ..domain.errors import (
    BookingConflictError,
    CapacityError,
    InvalidStateError,
    ReservationError,
    ReservationNotFoundError,
    ReservationValidationError,
    TableNotFoundError,
    TimeWindowError,
    VersionConflictError,
)
from ..domain.policies import format_time_remaining
from ..utils.audit_log import emit_audit_log

_ETAG = re.compile(r'^(?:W/)?"?(\d+)"?$')

_STATUS_CODES: dict[type[ReservationError], int] = {
    ReservationValidationError: status.HTTP_400_BAD_REQUEST,
    CapacityError: status.HTTP_400_BAD_REQUEST,
    InvalidStateError: status.HTTP_400_BAD_REQUEST,
    TimeWindowError: status.HTTP_403_FORBIDDEN,
    ReservationNotFoundError: status.HTTP_404_NOT_FOUND,
    TableNotFoundError: status.HTTP_404_NOT_FOUND,
    BookingConflictError: status.HTTP_409_CONFLICT,
    VersionConflictError: status.HTTP_409_CONFLICT,
}


def to_http_exception(exc: ReservationError) -> HTTPException:
    """Translate a domain error into an HTTPException with a structured detail."""
    detail: dict[str, Any] = {"error": exc.code, "message": exc.message}
    if isinstance(exc, CapacityError):
        detail["rule"] = str(exc.rule)
        detail["total_capacity"] = exc.total_capacity
        detail["suggestions"] = exc.suggestions
    elif isinstance(exc, TimeWindowError):
        detail["hours_until"] = round(exc.hours_until, 2)
        detail["time_remaining"] = format_time_remaining(max(exc.hours_until, 0))
    elif isinstance(exc, BookingConflictError):
        detail["suggestions"] = exc.suggestions
        detail["retryable"] = True

    status_code = next(
        (_STATUS_CODES[cls] for cls in type(exc).__mro__ if cls in _STATUS_CODES),
        status.HTTP_400_BAD_REQUEST,
    )
    return HTTPException(status_code=status_code, detail=detail)


def booking_race_lost() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail={
            "error": BookingConflictError.code,
            "message": "someone else just booked this table, please pick another",
            "suggestions": [],
            "retryable": True,
        },
    )


def extract_version(if_match: Optional[str], payload: object) -> Optional[int]:
    """Optimistic lock version: If-Match header wins over the body field. None when neither is sent."""
    if if_match is not None:
        match = _ETAG.match(if_match.strip())
        if match is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid If-Match header")
        version = int(match.group(1))
    else:
        version = getattr(payload, "version", None)
        if version is None:
            return None
    if version < 1:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="version must be >= 1")
    return version


def audit_or_500(**kwargs: Any) -> None:
    try:
        emit_audit_log(**kwargs)
    except RuntimeError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="failed to write audit log"
        ) from exc

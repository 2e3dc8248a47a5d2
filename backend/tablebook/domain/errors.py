from __future__ import annotations

from enum import StrEnum
from typing import Sequence


class ReservationError(Exception):
    """Base class for every error raised by the reservation engine."""

    code = "reservation_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ReservationValidationError(ReservationError):
    code = "validation_error"


class CapacityRule(StrEnum):
    NO_TABLES = "no_tables"
    TABLES_UNAVAILABLE = "tables_unavailable"
    TABLE_TOO_LARGE = "table_too_large"
    INSUFFICIENT_CAPACITY = "insufficient_capacity"
    EXCESS_CAPACITY = "excess_capacity"


class CapacityError(ReservationError):
    code = "capacity_error"

    def __init__(
        self,
        message: str,
        *,
        rule: CapacityRule,
        total_capacity: int,
        suggestions: Sequence[int] = (),
    ) -> None:
        super().__init__(message)
        self.rule = rule
        self.total_capacity = total_capacity
        self.suggestions = list(suggestions)


class TimeWindowError(ReservationError):
    code = "time_window_error"

    def __init__(self, message: str, *, hours_until: float) -> None:
        super().__init__(message)
        self.hours_until = hours_until


class BookingConflictError(ReservationError):
    """Requested tables are taken. Retryable after re-querying availability."""

    code = "booking_conflict"
    retryable = True

    def __init__(self, message: str, *, suggestions: Sequence[int] = ()) -> None:
        super().__init__(message)
        self.suggestions = list(suggestions)


class VersionConflictError(ReservationError):
    code = "version_conflict"


class InvalidStateError(ReservationError):
    code = "invalid_state"


class ReservationNotFoundError(ReservationError):
    code = "reservation_not_found"


class TableNotFoundError(ReservationError):
    code = "table_not_found"

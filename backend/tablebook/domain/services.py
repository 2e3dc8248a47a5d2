from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Sequence

from .errors import CapacityError, CapacityRule, ReservationValidationError
from .slots import is_valid_slot, label_of

MIN_GUESTS = 1
MAX_GUESTS = 20


@dataclass(frozen=True)
class TableSnapshot:
    table_number: int
    capacity: int
    is_active: bool = True


@dataclass(frozen=True)
class TableAvailability:
    available: list[int] = field(default_factory=list)
    occupied: list[int] = field(default_factory=list)
    not_eligible: list[int] = field(default_factory=list)


def validate_booking_request(
    *,
    booking_date: date | None,
    slot: int | None,
    guests: int | None,
    today: date | None = None,
) -> None:
    """Reject malformed input before any table lookups happen."""
    if booking_date is None:
        raise ReservationValidationError("date is required")
    if slot is None:
        raise ReservationValidationError("slot is required")
    if not is_valid_slot(slot):
        raise ReservationValidationError(f"slot must be between 1 and 15, got {slot}")
    if guests is None or not MIN_GUESTS <= guests <= MAX_GUESTS:
        raise ReservationValidationError(f"guests must be between {MIN_GUESTS} and {MAX_GUESTS}")
    if today is not None and booking_date < today:
        raise ReservationValidationError("reservation date cannot be in the past")


def validate_table_selection(
    requested: Sequence[int],
    tables: Iterable[TableSnapshot],
    *,
    guests: int,
) -> int:
    """
    Pure validation of a table selection against the party size.
    Returns the total capacity if OK. Raises CapacityError otherwise; the error
    always carries the total capacity of the tables that were found.
    """
    active = [t for t in tables if t.is_active and t.table_number in requested]
    total_capacity = sum(t.capacity for t in active)
    max_capacity = guests + 1

    if not requested:
        raise CapacityError(
            "at least one table must be selected",
            rule=CapacityRule.NO_TABLES,
            total_capacity=0,
        )
    if len(set(requested)) != len(requested) or len(active) != len(requested):
        raise CapacityError(
            "one or more selected tables not found or inactive",
            rule=CapacityRule.TABLES_UNAVAILABLE,
            total_capacity=total_capacity,
        )
    for table in sorted(active, key=lambda t: t.table_number):
        if table.capacity > max_capacity:
            raise CapacityError(
                f"table {table.table_number} (capacity {table.capacity}) is too large for {guests} guests",
                rule=CapacityRule.TABLE_TOO_LARGE,
                total_capacity=total_capacity,
            )
    if total_capacity < guests:
        raise CapacityError(
            f"total capacity ({total_capacity}) is insufficient for {guests} guests",
            rule=CapacityRule.INSUFFICIENT_CAPACITY,
            total_capacity=total_capacity,
        )
    if total_capacity > max_capacity:
        raise CapacityError(
            f"total capacity ({total_capacity}) exceeds maximum allowed ({max_capacity}) for {guests} guests",
            rule=CapacityRule.EXCESS_CAPACITY,
            total_capacity=total_capacity,
        )
    return total_capacity


def partition_tables(
    tables: Iterable[TableSnapshot],
    occupied_numbers: set[int],
    *,
    guests: int,
) -> TableAvailability:
    """Split active tables into available / occupied / not eligible for `guests`."""
    max_capacity = guests + 1
    result = TableAvailability()
    for table in sorted(tables, key=lambda t: t.table_number):
        if not table.is_active:
            continue
        if table.table_number in occupied_numbers:
            result.occupied.append(table.table_number)
        elif table.capacity > max_capacity:
            result.not_eligible.append(table.table_number)
        else:
            result.available.append(table.table_number)
    return result


def build_reservation_number(booking_date: date, slot: int, table_numbers: Iterable[int]) -> str:
    """Format: YYYYMMDD-HHMM-T1-T2 with tables in ascending order."""
    label = label_of(slot)
    if label is None:
        raise ReservationValidationError(f"slot must be between 1 and 15, got {slot}")
    tables = "-".join(str(n) for n in sorted(table_numbers))
    return f"{booking_date:%Y%m%d}-{label.replace(':', '')}-{tables}"

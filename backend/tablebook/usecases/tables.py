from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, Iterable, List

from ..domain.calendar import BookingCalendar
from ..domain.errors import ReservationValidationError, TableNotFoundError
from ..domain.repositories import ReservationRepository, TableRepository
from ..domain.services import TableAvailability, TableSnapshot, partition_tables
from ..domain.slots import is_valid_slot, occupied_range, overlapping_start_slots
from ..models import DiningTable

logger = logging.getLogger(__name__)

DEFAULT_TABLE_COUNT = 22
SMALL_TABLE_CUTOFF = 10


def snapshot(table: DiningTable) -> TableSnapshot:
    return TableSnapshot(table_number=table.table_number, capacity=table.capacity, is_active=table.is_active)


async def find_available_tables(
    table_repo: TableRepository,
    res_repo: ReservationRepository,
    *,
    booking_date: date,
    slot: int,
    guests: int,
    exclude_reservation_id: int | None = None,
) -> TableAvailability:
    """Advisory partition of active tables for a party starting at `slot`."""
    if not is_valid_slot(slot):
        raise ReservationValidationError(f"slot must be between 1 and 15, got {slot}")
    if guests < 1:
        raise ReservationValidationError("guests must be at least 1")
    tables = await table_repo.list_active()
    # Booking rows are authoritative; live reservations cover rows not yet written.
    occupied = await table_repo.tables_booked_during(
        booking_date,
        occupied_range(slot),
        exclude_reservation_id=exclude_reservation_id,
    )
    window = overlapping_start_slots(slot)
    overlapping = await res_repo.list_live_starting_between(
        booking_date,
        window.start,
        window.stop - 1,
        exclude_reservation_id=exclude_reservation_id,
    )
    for reservation in overlapping:
        occupied.update(reservation.table_numbers or [])
    return partition_tables((snapshot(t) for t in tables), occupied, guests=guests)


async def suggest_tables(
    table_repo: TableRepository,
    res_repo: ReservationRepository,
    *,
    booking_date: date,
    slot: int,
    guests: int,
    limit: int,
    exclude_reservation_id: int | None = None,
) -> list[int]:
    if not is_valid_slot(slot) or guests < 1:
        return []
    availability = await find_available_tables(
        table_repo,
        res_repo,
        booking_date=booking_date,
        slot=slot,
        guests=guests,
        exclude_reservation_id=exclude_reservation_id,
    )
    return availability.available[:limit]


async def get_calendar(table_repo: TableRepository, *, booking_date: date) -> List[Dict[str, Any]]:
    tables = await table_repo.list_active()
    booked = await table_repo.booked_slots_on(booking_date)
    items: List[Dict[str, Any]] = []
    for table in tables:
        calendar = BookingCalendar.from_mapping(
            table.table_number, {booking_date: booked.get(table.table_number, [])}
        )
        available = calendar.available_slots(booking_date)
        items.append(
            {
                "table_number": table.table_number,
                "capacity": table.capacity,
                "booked_slots": calendar.booked_slots(booking_date),
                "available_slots": available,
                "is_fully_booked": not available,
            }
        )
    return items


async def occupy_tables(
    table_repo: TableRepository,
    table_numbers: Iterable[int],
    *,
    booking_date: date,
    slot: int,
    reservation_id: int,
) -> None:
    for table_number in sorted(table_numbers):
        await table_repo.occupy(table_number, booking_date, slot, reservation_id)
        logger.info("table %s booked for reservation %s", table_number, reservation_id)


async def release_tables(
    table_repo: TableRepository,
    table_numbers: Iterable[int],
    *,
    booking_date: date,
    slot: int,
    reservation_id: int,
) -> None:
    for table_number in sorted(table_numbers):
        await table_repo.release(table_number, booking_date, slot, reservation_id)
        logger.info("table %s released from reservation %s", table_number, reservation_id)


async def list_tables(table_repo: TableRepository) -> list[DiningTable]:
    return await table_repo.list_all()


async def get_table(table_repo: TableRepository, *, table_number: int) -> DiningTable:
    table = await table_repo.get_by_number(table_number)
    if table is None:
        raise TableNotFoundError(f"table {table_number} not found")
    return table


async def update_table(
    table_repo: TableRepository,
    *,
    table_number: int,
    capacity: int | None = None,
    notes: str | None = None,
    is_active: bool | None = None,
) -> DiningTable:
    table = await get_table(table_repo, table_number=table_number)
    if capacity is not None:
        if not 1 <= capacity <= 12:
            raise ReservationValidationError("table capacity must be between 1 and 12")
        table.capacity = capacity
    if notes is not None:
        table.notes = notes
    if is_active is not None:
        table.is_active = is_active
    return await table_repo.update(table)


async def initialize_tables(table_repo: TableRepository, *, count: int = DEFAULT_TABLE_COUNT) -> int:
    """Create the default floor plan when no tables exist. Returns the number created."""
    if await table_repo.count() > 0:
        return 0
    specs = [(n, 4 if n <= SMALL_TABLE_CUTOFF else 6) for n in range(1, count + 1)]
    created = await table_repo.create_many(specs)
    logger.info("initialized %d tables", len(created))
    return len(created)

"""Fixed calendar of bookable time slots.

Slots 1-6 cover lunch service (11:00-13:30), slots 7-15 dinner service
(18:00-22:00). A reservation occupies three consecutive slots (90 minutes)
starting at its own slot.
"""
from __future__ import annotations

from datetime import date, datetime, time, tzinfo
from typing import Optional

TIME_SLOTS: dict[int, str] = {
    # lunch
    1: "11:00",
    2: "11:30",
    3: "12:00",
    4: "12:30",
    5: "13:00",
    6: "13:30",
    # dinner
    7: "18:00",
    8: "18:30",
    9: "19:00",
    10: "19:30",
    11: "20:00",
    12: "20:30",
    13: "21:00",
    14: "21:30",
    15: "22:00",
}

FIRST_SLOT = min(TIME_SLOTS)
LAST_SLOT = max(TIME_SLOTS)
SLOTS_PER_RESERVATION = 3


def all_slots() -> tuple[int, ...]:
    return tuple(sorted(TIME_SLOTS))


def is_valid_slot(slot: object) -> bool:
    return isinstance(slot, int) and not isinstance(slot, bool) and slot in TIME_SLOTS


def label_of(slot: int) -> Optional[str]:
    return TIME_SLOTS.get(slot)


def time_of(slot: int) -> Optional[time]:
    label = label_of(slot)
    if label is None:
        return None
    hours, minutes = label.split(":")
    return time(int(hours), int(minutes))


def datetime_of(booking_date: date, slot: int, tz: tzinfo) -> Optional[datetime]:
    """Return the timezone-aware start of `slot` on `booking_date`."""
    start = time_of(slot)
    if start is None:
        return None
    return datetime.combine(booking_date, start, tzinfo=tz)


def occupied_range(slot: int) -> tuple[int, ...]:
    """Slots held by a reservation starting at `slot`.

    Slots past the end of the calendar do not exist and are never stored.
    """
    if not is_valid_slot(slot):
        raise ValueError(f"invalid slot: {slot!r}")
    return tuple(s for s in range(slot, slot + SLOTS_PER_RESERVATION) if s <= LAST_SLOT)


def overlapping_start_slots(slot: int) -> range:
    """Starting slots of reservations whose occupancy covers `slot`."""
    return range(max(FIRST_SLOT, slot - (SLOTS_PER_RESERVATION - 1)), slot + 1)

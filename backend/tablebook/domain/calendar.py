from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Mapping

from .slots import all_slots, occupied_range


@dataclass
class BookingCalendar:
    """Read view over one table's booked slots, keyed by date.

    Dates without booked slots are never stored.
    """

    table_number: int
    entries: dict[date, frozenset[int]] = field(default_factory=dict)

    @classmethod
    def from_rows(cls, table_number: int, rows: Iterable[tuple[date, int]]) -> "BookingCalendar":
        grouped: dict[date, set[int]] = {}
        for booking_date, slot in rows:
            grouped.setdefault(booking_date, set()).add(slot)
        return cls(table_number, {d: frozenset(s) for d, s in grouped.items() if s})

    @classmethod
    def from_mapping(cls, table_number: int, booked: Mapping[date, Iterable[int]]) -> "BookingCalendar":
        return cls(table_number, {d: frozenset(s) for d, s in booked.items() if s})

    def booked_slots(self, booking_date: date) -> list[int]:
        return sorted(self.entries.get(booking_date, frozenset()))

    def is_slot_free(self, booking_date: date, slot: int) -> bool:
        booked = self.entries.get(booking_date)
        if not booked:
            return True
        return booked.isdisjoint(occupied_range(slot))

    def available_slots(self, booking_date: date) -> list[int]:
        return [slot for slot in all_slots() if self.is_slot_free(booking_date, slot)]

from __future__ import annotations

from datetime import date
from typing import Any, Iterable, Protocol, Sequence

from ..models import DiningTable, Reservation, ReservationStatus


class TableRepository(Protocol):
    async def list_all(self) -> list[DiningTable]: ...

    async def list_active(self) -> list[DiningTable]: ...

    async def get_by_number(self, table_number: int) -> DiningTable | None: ...

    async def get_many(self, table_numbers: Iterable[int]) -> list[DiningTable]: ...

    async def count(self) -> int: ...

    async def create_many(self, specs: Sequence[tuple[int, int]]) -> list[DiningTable]: ...

    async def update(self, table: DiningTable) -> DiningTable: ...

    async def booked_slots_on(self, booking_date: date) -> dict[int, list[int]]: ...

    async def tables_booked_during(
        self,
        booking_date: date,
        slots: Iterable[int],
        exclude_reservation_id: int | None = None,
    ) -> set[int]: ...

    async def occupy(self, table_number: int, booking_date: date, slot: int, reservation_id: int) -> None: ...

    async def release(self, table_number: int, booking_date: date, slot: int, reservation_id: int) -> None: ...


class ReservationRepository(Protocol):
    async def create(self, **fields: Any) -> Reservation: ...

    async def get_for_update(self, reservation_id: int) -> Reservation | None: ...

    async def get_for_user_for_update(self, reservation_id: int, user_id: int) -> Reservation | None: ...

    async def get_for_user(self, reservation_id: int, user_id: int) -> Reservation | None: ...

    async def list_by_user(self, user_id: int) -> list[Reservation]: ...

    async def list_live_starting_between(
        self,
        booking_date: date,
        first_slot: int,
        last_slot: int,
        exclude_reservation_id: int | None = None,
    ) -> list[Reservation]: ...

    async def save(self, reservation: Reservation) -> Reservation: ...

    async def count_by_status(self) -> dict[ReservationStatus, int]: ...

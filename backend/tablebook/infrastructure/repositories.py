from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any, Iterable, Sequence

from sqlalchemy import Select, delete, func, insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.errors import BookingConflictError
from ..domain.lifecycle import LIVE_STATUSES
from ..domain.repositories import ReservationRepository, TableRepository
from ..domain.slots import occupied_range
from ..models import DiningTable, Reservation, ReservationStatus, TableSlotBooking, User

logger = logging.getLogger(__name__)


def _utc_now_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class SqlAlchemyUserRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, user_id: int) -> User | None:
        result = await self.session.scalar(select(User).where(User.id == user_id))
        return result if isinstance(result, User) else None


class SqlAlchemyTableRepository(TableRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def list_all(self) -> list[DiningTable]:
        rows = await self.session.scalars(select(DiningTable).order_by(DiningTable.table_number))
        return list(rows)

    async def list_active(self) -> list[DiningTable]:
        stmt = (
            select(DiningTable)
            .where(DiningTable.is_active.is_(True), DiningTable.capacity >= 1)
            .order_by(DiningTable.table_number)
        )
        return list(await self.session.scalars(stmt))

    async def get_by_number(self, table_number: int) -> DiningTable | None:
        result = await self.session.scalar(select(DiningTable).where(DiningTable.table_number == table_number))
        return result if isinstance(result, DiningTable) else None

    async def get_many(self, table_numbers: Iterable[int]) -> list[DiningTable]:
        numbers = sorted(set(table_numbers))
        if not numbers:
            return []
        stmt = select(DiningTable).where(DiningTable.table_number.in_(numbers)).order_by(DiningTable.table_number)
        return list(await self.session.scalars(stmt))

    async def count(self) -> int:
        return int(await self.session.scalar(select(func.count(DiningTable.id))) or 0)

    async def create_many(self, specs: Sequence[tuple[int, int]]) -> list[DiningTable]:
        now = _utc_now_naive()
        tables = [
            DiningTable(
                table_number=number,
                capacity=capacity,
                is_active=True,
                created_at=now,
                updated_at=now,
            )
            for number, capacity in specs
        ]
        self.session.add_all(tables)
        await self.session.flush()
        return tables

    async def update(self, table: DiningTable) -> DiningTable:
        table.updated_at = _utc_now_naive()
        self.session.add(table)
        await self.session.flush()
        return table

    async def booked_slots_on(self, booking_date: date) -> dict[int, list[int]]:
        stmt = (
            select(TableSlotBooking.table_number, TableSlotBooking.slot)
            .where(TableSlotBooking.booking_date == booking_date)
            .order_by(TableSlotBooking.table_number, TableSlotBooking.slot)
        )
        booked: dict[int, list[int]] = {}
        for table_number, slot in (await self.session.execute(stmt)).all():
            booked.setdefault(int(table_number), []).append(int(slot))
        return booked

    async def tables_booked_during(
        self,
        booking_date: date,
        slots: Iterable[int],
        exclude_reservation_id: int | None = None,
    ) -> set[int]:
        stmt = (
            select(TableSlotBooking.table_number)
            .where(
                TableSlotBooking.booking_date == booking_date,
                TableSlotBooking.slot.in_(list(slots)),
            )
            .distinct()
        )
        if exclude_reservation_id is not None:
            stmt = stmt.where(TableSlotBooking.reservation_id != exclude_reservation_id)
        return {int(n) for n in await self.session.scalars(stmt)}

    async def occupy(self, table_number: int, booking_date: date, slot: int, reservation_id: int) -> None:
        slots = occupied_range(slot)
        held_stmt = select(TableSlotBooking.slot).where(
            TableSlotBooking.table_number == table_number,
            TableSlotBooking.booking_date == booking_date,
            TableSlotBooking.reservation_id == reservation_id,
            TableSlotBooking.slot.in_(slots),
        )
        held = set(await self.session.scalars(held_stmt))
        missing = [s for s in slots if s not in held]
        if not missing:
            return
        now = _utc_now_naive()
        rows = [
            {
                "table_number": table_number,
                "booking_date": booking_date,
                "slot": s,
                "reservation_id": reservation_id,
                "created_at": now,
            }
            for s in missing
        ]
        try:
            await self.session.execute(insert(TableSlotBooking), rows)
        except IntegrityError as exc:
            logger.info(
                "table %s already booked on %s around slot %s (reservation %s lost the race)",
                table_number,
                booking_date,
                slot,
                reservation_id,
            )
            raise BookingConflictError(
                f"table {table_number} was just booked by someone else for this time"
            ) from exc
        logger.debug("table %s occupied on %s slots %s", table_number, booking_date, missing)

    async def release(self, table_number: int, booking_date: date, slot: int, reservation_id: int) -> None:
        stmt = delete(TableSlotBooking).where(
            TableSlotBooking.table_number == table_number,
            TableSlotBooking.booking_date == booking_date,
            TableSlotBooking.reservation_id == reservation_id,
            TableSlotBooking.slot.in_(occupied_range(slot)),
        )
        await self.session.execute(stmt)
        logger.debug("table %s released on %s from slot %s", table_number, booking_date, slot)


class SqlAlchemyReservationRepository(ReservationRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create(self, **fields: Any) -> Reservation:
        now = _utc_now_naive()
        reservation = Reservation(version=1, created_at=now, updated_at=now, **fields)
        self.session.add(reservation)
        await self.session.flush()
        return reservation

    async def get_for_update(self, reservation_id: int) -> Reservation | None:
        stmt = select(Reservation).where(Reservation.id == reservation_id).with_for_update()
        result = await self.session.scalar(stmt)
        return result if isinstance(result, Reservation) else None

    async def get_for_user_for_update(self, reservation_id: int, user_id: int) -> Reservation | None:
        stmt = (
            select(Reservation)
            .where(Reservation.id == reservation_id, Reservation.user_id == user_id)
            .with_for_update()
        )
        result = await self.session.scalar(stmt)
        return result if isinstance(result, Reservation) else None

    async def get_for_user(self, reservation_id: int, user_id: int) -> Reservation | None:
        stmt = select(Reservation).where(Reservation.id == reservation_id, Reservation.user_id == user_id)
        result = await self.session.scalar(stmt)
        return result if isinstance(result, Reservation) else None

    async def list_by_user(self, user_id: int) -> list[Reservation]:
        stmt = (
            select(Reservation)
            .where(Reservation.user_id == user_id)
            .order_by(Reservation.booking_date.desc(), Reservation.slot.desc())
        )
        return list(await self.session.scalars(stmt))

    async def list_live_starting_between(
        self,
        booking_date: date,
        first_slot: int,
        last_slot: int,
        exclude_reservation_id: int | None = None,
    ) -> list[Reservation]:
        stmt: Select[tuple[Reservation]] = select(Reservation).where(
            Reservation.booking_date == booking_date,
            Reservation.slot >= first_slot,
            Reservation.slot <= last_slot,
            Reservation.status.in_(LIVE_STATUSES),
        )
        if exclude_reservation_id is not None:
            stmt = stmt.where(Reservation.id != exclude_reservation_id)
        return list(await self.session.scalars(stmt))

    async def save(self, reservation: Reservation) -> Reservation:
        reservation.updated_at = _utc_now_naive()
        self.session.add(reservation)
        await self.session.flush()
        return reservation

    async def count_by_status(self) -> dict[ReservationStatus, int]:
        stmt = select(Reservation.status, func.count(Reservation.id)).group_by(Reservation.status)
        rows = (await self.session.execute(stmt)).all()
        counts = {status: 0 for status in ReservationStatus}
        for status, count in rows:
            counts[ReservationStatus(status)] = int(count)
        return counts

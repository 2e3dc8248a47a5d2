import asyncio
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Iterable, Sequence

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from tablebook.domain.errors import BookingConflictError
from tablebook.domain.lifecycle import LIVE_STATUSES
from tablebook.domain.slots import occupied_range
from tablebook.infrastructure.repositories import SqlAlchemyTableRepository
from tablebook.models import Base, DiningTable, Reservation, ReservationStatus, User, UserRole
from tablebook.usecases.reservations import starts_at


def _naive_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class FakeTableRepo:
    """In-memory table store. `bookings` plays the role of the unique (table, date, slot) index."""

    def __init__(self, capacities: dict[int, int]) -> None:
        now = _naive_now()
        self.tables: dict[int, DiningTable] = {
            number: DiningTable(
                id=number,
                table_number=number,
                capacity=capacity,
                is_active=True,
                notes=None,
                created_at=now,
                updated_at=now,
            )
            for number, capacity in capacities.items()
        }
        self.bookings: dict[tuple[int, date, int], int] = {}

    async def list_all(self) -> list[DiningTable]:
        return [self.tables[n] for n in sorted(self.tables)]

    async def list_active(self) -> list[DiningTable]:
        return [t for t in await self.list_all() if t.is_active]

    async def get_by_number(self, table_number: int) -> DiningTable | None:
        return self.tables.get(table_number)

    async def get_many(self, table_numbers: Iterable[int]) -> list[DiningTable]:
        return [self.tables[n] for n in sorted(set(table_numbers)) if n in self.tables]

    async def count(self) -> int:
        return len(self.tables)

    async def create_many(self, specs: Sequence[tuple[int, int]]) -> list[DiningTable]:
        now = _naive_now()
        created = []
        for number, capacity in specs:
            table = DiningTable(
                id=number,
                table_number=number,
                capacity=capacity,
                is_active=True,
                created_at=now,
                updated_at=now,
            )
            self.tables[number] = table
            created.append(table)
        return created

    async def update(self, table: DiningTable) -> DiningTable:
        self.tables[table.table_number] = table
        return table

    async def booked_slots_on(self, booking_date: date) -> dict[int, list[int]]:
        booked: dict[int, list[int]] = {}
        for (table_number, day, slot) in sorted(self.bookings):
            if day == booking_date:
                booked.setdefault(table_number, []).append(slot)
        return booked

    async def tables_booked_during(
        self,
        booking_date: date,
        slots: Iterable[int],
        exclude_reservation_id: int | None = None,
    ) -> set[int]:
        wanted = set(slots)
        return {
            table_number
            for (table_number, day, slot), holder in self.bookings.items()
            if day == booking_date and slot in wanted and holder != exclude_reservation_id
        }

    async def occupy(self, table_number: int, booking_date: date, slot: int, reservation_id: int) -> None:
        cells = [(table_number, booking_date, s) for s in occupied_range(slot)]
        for cell in cells:
            holder = self.bookings.get(cell)
            if holder is not None and holder != reservation_id:
                raise BookingConflictError(f"table {table_number} was just booked by someone else")
        for cell in cells:
            self.bookings[cell] = reservation_id

    async def release(self, table_number: int, booking_date: date, slot: int, reservation_id: int) -> None:
        for s in occupied_range(slot):
            cell = (table_number, booking_date, s)
            if self.bookings.get(cell) == reservation_id:
                del self.bookings[cell]

    def held_by(self, reservation_id: int) -> set[tuple[int, date, int]]:
        return {cell for cell, holder in self.bookings.items() if holder == reservation_id}


class FakeReservationRepo:
    def __init__(self) -> None:
        self.rows: dict[int, Reservation] = {}
        self._next_id = 1
        self.saved = 0

    async def create(self, **fields: Any) -> Reservation:
        now = _naive_now()
        reservation = Reservation(id=self._next_id, version=1, notes=None, created_at=now, updated_at=now, **fields)
        self.rows[reservation.id] = reservation
        self._next_id += 1
        return reservation

    async def get_for_update(self, reservation_id: int) -> Reservation | None:
        return self.rows.get(reservation_id)

    async def get_for_user_for_update(self, reservation_id: int, user_id: int) -> Reservation | None:
        return await self.get_for_user(reservation_id, user_id)

    async def get_for_user(self, reservation_id: int, user_id: int) -> Reservation | None:
        reservation = self.rows.get(reservation_id)
        if reservation is None or reservation.user_id != user_id:
            return None
        return reservation

    async def list_by_user(self, user_id: int) -> list[Reservation]:
        rows = [r for r in self.rows.values() if r.user_id == user_id]
        return sorted(rows, key=lambda r: (r.booking_date, r.slot), reverse=True)

    async def list_live_starting_between(
        self,
        booking_date: date,
        first_slot: int,
        last_slot: int,
        exclude_reservation_id: int | None = None,
    ) -> list[Reservation]:
        rows = [
            r
            for r in self.rows.values()
            if r.booking_date == booking_date
            and first_slot <= r.slot <= last_slot
            and r.status in LIVE_STATUSES
            and r.id != exclude_reservation_id
        ]
        # yield after reading so concurrent callers both see the same snapshot
        await asyncio.sleep(0)
        return rows

    async def save(self, reservation: Reservation) -> Reservation:
        reservation.updated_at = _naive_now()
        self.rows[reservation.id] = reservation
        self.saved += 1
        return reservation

    async def count_by_status(self) -> dict[ReservationStatus, int]:
        counts = {status: 0 for status in ReservationStatus}
        for reservation in self.rows.values():
            counts[reservation.status] += 1
        return counts


# tables 1-10 seat 4, 11-22 seat 6
DEFAULT_CAPACITIES = {n: 4 if n <= 10 else 6 for n in range(1, 23)}


@pytest.fixture
def table_repo() -> FakeTableRepo:
    return FakeTableRepo(DEFAULT_CAPACITIES)


@pytest.fixture
def res_repo() -> FakeReservationRepo:
    return FakeReservationRepo()


@pytest.fixture
def booking_date() -> date:
    return date.today() + timedelta(days=7)


@pytest.fixture
def customer() -> User:
    now = _naive_now()
    return User(
        id=200,
        email="guest@example.com",
        name="Guest",
        phone="0312345678",
        role=UserRole.CUSTOMER,
        created_at=now,
        updated_at=now,
    )


@pytest.fixture
def other_customer() -> User:
    now = _naive_now()
    return User(
        id=201,
        email="other@example.com",
        name="Other",
        phone=None,
        role=UserRole.CUSTOMER,
        created_at=now,
        updated_at=now,
    )


@pytest.fixture
def hours_before() -> Callable[[date, int, float], datetime]:
    """Build a `now` that lies `hours` before the reservation start."""

    def build(booking_date: date, slot: int, hours: float) -> datetime:
        return starts_at(booking_date, slot) - timedelta(hours=hours)

    return build


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "tablebook.db"


@asynccontextmanager
async def sqlite_sessions(path: Path) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    """Fresh schema in a SQLite file; every session gets its own connection."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{path}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    finally:
        await engine.dispose()


async def seed_database(
    sessions: async_sessionmaker[AsyncSession],
    users: Iterable[User],
    tables: Sequence[tuple[int, int]],
) -> None:
    async with sessions() as session, session.begin():
        session.add_all(list(users))
        await SqlAlchemyTableRepository(session).create_many(tables)

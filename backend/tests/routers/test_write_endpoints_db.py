from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any, AsyncIterator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from tablebook.config import get_settings
from tablebook.deps import get_session
from tablebook.main import app
from tablebook.models import TableSlotBooking, User, UserRole
from tablebook.utils.auth import create_access_token

from conftest import seed_database, sqlite_sessions


@pytest.fixture(autouse=True)
def _auth_secret(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AUTH_SECRET", "testsecret")
    get_settings.cache_clear()


@pytest.fixture
def admin_user() -> User:
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    return User(id=1, email="admin@example.com", name="Admin", role=UserRole.ADMIN, created_at=now, updated_at=now)


def _bearer(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id=user.id, secret='testsecret')}"}


def _booking(booking_date: date, **overrides: Any) -> dict[str, Any]:
    body: dict[str, Any] = {
        "date": booking_date.isoformat(),
        "slot": 9,
        "guests": 4,
        "table_numbers": [3],
        "contact_phone": "0312345678",
    }
    body.update(overrides)
    return body


@asynccontextmanager
async def _client(
    sessions: async_sessionmaker[AsyncSession], monkeypatch: pytest.MonkeyPatch
) -> AsyncIterator[AsyncClient]:
    async def override_get_session() -> AsyncIterator[AsyncSession]:
        async with sessions() as session:
            yield session

    monkeypatch.setitem(app.dependency_overrides, get_session, override_get_session)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


async def _booking_rows(sessions: async_sessionmaker[AsyncSession]) -> int:
    async with sessions() as session:
        return int(await session.scalar(select(func.count(TableSlotBooking.id))) or 0)


@pytest.mark.asyncio
async def test_customer_books_and_cancels(
    db_path: Path, monkeypatch: pytest.MonkeyPatch, customer: User, booking_date: date
) -> None:
    async with sqlite_sessions(db_path) as sessions:
        await seed_database(sessions, [customer], [(3, 4), (4, 4)])
        async with _client(sessions, monkeypatch) as client:
            created = await client.post("/reservations", json=_booking(booking_date), headers=_bearer(customer))
            assert created.status_code == 201, created.text
            body = created.json()
            assert body["table_numbers"] == [3]
            assert body["version"] == 1
            assert await _booking_rows(sessions) == 3

            taken = await client.post("/reservations", json=_booking(booking_date, slot=10), headers=_bearer(customer))
            assert taken.status_code == 409
            assert taken.json()["detail"]["error"] == "booking_conflict"
            assert 4 in taken.json()["detail"]["suggestions"]

            cancelled = await client.post(
                f"/me/reservations/{body['reservation_id']}/cancel", headers=_bearer(customer)
            )
            assert cancelled.status_code == 200, cancelled.text
            assert cancelled.json()["status"] == "cancelled"
        assert await _booking_rows(sessions) == 0


@pytest.mark.asyncio
async def test_table_selection_errors_carry_capacity_details(
    db_path: Path, monkeypatch: pytest.MonkeyPatch, customer: User, booking_date: date
) -> None:
    async with sqlite_sessions(db_path) as sessions:
        await seed_database(sessions, [customer], [(3, 4), (4, 4)])
        async with _client(sessions, monkeypatch) as client:
            empty = await client.post(
                "/reservations", json=_booking(booking_date, table_numbers=[]), headers=_bearer(customer)
            )
            assert empty.status_code == 400
            assert empty.json()["detail"]["rule"] == "no_tables"
            assert empty.json()["detail"]["total_capacity"] == 0
            assert empty.json()["detail"]["suggestions"] == [3, 4]

            repeated = await client.post(
                "/reservations", json=_booking(booking_date, table_numbers=[3, 3]), headers=_bearer(customer)
            )
            assert repeated.status_code == 400
            assert repeated.json()["detail"]["rule"] == "tables_unavailable"
            assert repeated.json()["detail"]["total_capacity"] == 4
        assert await _booking_rows(sessions) == 0


@pytest.mark.asyncio
async def test_admin_books_for_customer_and_cannot_move_it_into_the_past(
    db_path: Path, monkeypatch: pytest.MonkeyPatch, customer: User, admin_user: User, booking_date: date
) -> None:
    async with sqlite_sessions(db_path) as sessions:
        await seed_database(sessions, [customer, admin_user], [(3, 4), (4, 4)])
        async with _client(sessions, monkeypatch) as client:
            created = await client.post(
                "/admin/reservations",
                json=_booking(booking_date, user_id=customer.id),
                headers=_bearer(admin_user),
            )
            assert created.status_code == 201, created.text
            reservation_id = created.json()["reservation_id"]
            assert created.json()["user_id"] == customer.id

            past = booking_date - timedelta(days=30)
            moved = await client.put(
                f"/admin/reservations/{reservation_id}",
                json={"date": past.isoformat()},
                headers=_bearer(admin_user),
            )
            assert moved.status_code == 400
            assert moved.json()["detail"]["error"] == "validation_error"

            mine = await client.get(f"/me/reservations/{reservation_id}", headers=_bearer(customer))
            assert mine.status_code == 200
            assert mine.json()["date"] == booking_date.isoformat()
        assert await _booking_rows(sessions) == 3

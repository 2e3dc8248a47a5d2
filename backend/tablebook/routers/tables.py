from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_current_user_id, get_session
from ..domain.errors import ReservationError
from ..infrastructure.repositories import SqlAlchemyReservationRepository, SqlAlchemyTableRepository
from ..schemas import TableAvailabilityRead, TableCalendarRead
from ..usecases import tables as table_usecase
from .common import to_http_exception

router = APIRouter(prefix="/tables", tags=["tables"], dependencies=[Depends(get_current_user_id)])


@router.get("/available", response_model=TableAvailabilityRead)
async def list_available_tables(
    booking_date: date = Query(..., alias="date", description="reservation date (YYYY-MM-DD)"),
    slot: int = Query(..., ge=1, le=15),
    guests: int = Query(default=1, ge=1, le=20),
    exclude_reservation_id: Optional[int] = Query(default=None, ge=1),
    session: AsyncSession = Depends(get_session),
) -> TableAvailabilityRead:
    table_repo = SqlAlchemyTableRepository(session)
    res_repo = SqlAlchemyReservationRepository(session)
    try:
        availability = await table_usecase.find_available_tables(
            table_repo,
            res_repo,
            booking_date=booking_date,
            slot=slot,
            guests=guests,
            exclude_reservation_id=exclude_reservation_id,
        )
    except ReservationError as exc:
        raise to_http_exception(exc) from exc
    return TableAvailabilityRead.from_domain(availability)


@router.get("/calendar", response_model=List[TableCalendarRead])
async def get_table_calendar(
    booking_date: date = Query(..., alias="date", description="reservation date (YYYY-MM-DD)"),
    session: AsyncSession = Depends(get_session),
) -> list[TableCalendarRead]:
    table_repo = SqlAlchemyTableRepository(session)
    rows = await table_usecase.get_calendar(table_repo, booking_date=booking_date)
    return [TableCalendarRead(**row) for row in rows]

from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Path, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_settings
from ..deps import get_session, require_admin
from ..domain.errors import ReservationError
from ..domain.lifecycle import Actor
from ..infrastructure.repositories import (
    SqlAlchemyReservationRepository,
    SqlAlchemyTableRepository,
    SqlAlchemyUserRepository,
)
from ..models import User
from ..schemas import (
    AdminReservationCreate,
    AdminReservationUpdate,
    ReservationRead,
    ReservationStats,
    ReservationStatusUpdate,
    TableRead,
    TablesInitialized,
    TableUpdate,
)
from ..usecases import reservations as reservation_usecase
from ..usecases import tables as table_usecase
from .common import audit_or_500, booking_race_lost, extract_version, to_http_exception

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


@router.post("/reservations", response_model=ReservationRead, status_code=status.HTTP_201_CREATED)
async def create_reservation_for_user(
    payload: AdminReservationCreate,
    session: AsyncSession = Depends(get_session),
    admin: User = Depends(require_admin),
) -> ReservationRead:
    table_repo = SqlAlchemyTableRepository(session)
    res_repo = SqlAlchemyReservationRepository(session)
    user_repo = SqlAlchemyUserRepository(session)
    try:
        async with session.begin():
            owner = await user_repo.get(payload.user_id)
            if owner is None:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="user not found")
            reservation = await reservation_usecase.create_reservation(
                table_repo,
                res_repo,
                user=owner,
                booking_date=payload.date,
                slot=payload.slot,
                guests=payload.guests,
                table_numbers=payload.table_numbers,
                contact_phone=payload.contact_phone,
                special_request=payload.special_request,
                actor=Actor.ADMIN,
                suggestion_limit=get_settings().suggestion_limit,
            )
    except ReservationError as exc:
        raise to_http_exception(exc) from exc
    except IntegrityError as exc:
        raise booking_race_lost() from exc

    audit_or_500(
        action="reservation.created",
        initiator="admin",
        actor_id=admin.id,
        reservation_id=reservation.id,
        reservation_number=reservation.reservation_number,
        user_id=reservation.user_id,
        booking_date=reservation.booking_date,
        slot=reservation.slot,
        table_numbers=reservation.table_numbers,
        guests=reservation.guests,
        status_to=reservation.status,
        version=reservation.version,
    )
    return ReservationRead.from_db(reservation=reservation, include_notes=True)


@router.get("/reservations/stats", response_model=ReservationStats)
async def get_reservation_stats(session: AsyncSession = Depends(get_session)) -> ReservationStats:
    res_repo = SqlAlchemyReservationRepository(session)
    stats = await reservation_usecase.reservation_stats(res_repo)
    return ReservationStats(**stats)


@router.put("/reservations/{reservation_id}", response_model=ReservationRead)
async def reassign_reservation(
    payload: AdminReservationUpdate,
    reservation_id: int = Path(..., ge=1),
    if_match: Optional[str] = Header(default=None),
    session: AsyncSession = Depends(get_session),
    admin: User = Depends(require_admin),
) -> ReservationRead:
    version = extract_version(if_match, payload)
    table_repo = SqlAlchemyTableRepository(session)
    res_repo = SqlAlchemyReservationRepository(session)
    patch = reservation_usecase.ReservationPatch(
        booking_date=payload.date,
        slot=payload.slot,
        guests=payload.guests,
        table_numbers=payload.table_numbers,
        special_request=payload.special_request,
        contact_phone=payload.contact_phone,
        notes=payload.notes,
        status=payload.status,
    )
    try:
        async with session.begin():
            reservation, previous = await reservation_usecase.reassign_reservation(
                table_repo,
                res_repo,
                reservation_id=reservation_id,
                patch=patch,
                version=version,
                suggestion_limit=get_settings().suggestion_limit,
            )
    except ReservationError as exc:
        raise to_http_exception(exc) from exc
    except IntegrityError as exc:
        raise booking_race_lost() from exc

    audit_or_500(
        action="reservation.reassigned",
        initiator="admin",
        actor_id=admin.id,
        reservation_id=reservation.id,
        reservation_number=reservation.reservation_number,
        user_id=reservation.user_id,
        booking_date=reservation.booking_date,
        slot=reservation.slot,
        table_numbers=reservation.table_numbers,
        guests=reservation.guests,
        status_from=previous,
        status_to=reservation.status,
        version=reservation.version,
    )
    return ReservationRead.from_db(reservation=reservation, include_notes=True)


@router.patch("/reservations/{reservation_id}/status", response_model=ReservationRead)
async def set_reservation_status(
    payload: ReservationStatusUpdate,
    reservation_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    admin: User = Depends(require_admin),
) -> ReservationRead:
    table_repo = SqlAlchemyTableRepository(session)
    res_repo = SqlAlchemyReservationRepository(session)
    try:
        async with session.begin():
            reservation, previous = await reservation_usecase.set_reservation_status(
                table_repo,
                res_repo,
                reservation_id=reservation_id,
                status=payload.status,
            )
    except ReservationError as exc:
        raise to_http_exception(exc) from exc

    if previous != reservation.status:
        audit_or_500(
            action="reservation.status_changed",
            initiator="admin",
            actor_id=admin.id,
            reservation_id=reservation.id,
            reservation_number=reservation.reservation_number,
            user_id=reservation.user_id,
            status_from=previous,
            status_to=reservation.status,
            version=reservation.version,
        )
    return ReservationRead.from_db(reservation=reservation, include_notes=True)


@router.get("/tables", response_model=List[TableRead])
async def list_tables(session: AsyncSession = Depends(get_session)) -> list[TableRead]:
    table_repo = SqlAlchemyTableRepository(session)
    return [TableRead.from_db(table=t) for t in await table_usecase.list_tables(table_repo)]


@router.get("/tables/{table_number}", response_model=TableRead)
async def get_table(
    table_number: int = Path(..., ge=1, le=22),
    session: AsyncSession = Depends(get_session),
) -> TableRead:
    table_repo = SqlAlchemyTableRepository(session)
    try:
        table = await table_usecase.get_table(table_repo, table_number=table_number)
    except ReservationError as exc:
        raise to_http_exception(exc) from exc
    return TableRead.from_db(table=table)


@router.patch("/tables/{table_number}", response_model=TableRead)
async def update_table(
    payload: TableUpdate,
    table_number: int = Path(..., ge=1, le=22),
    session: AsyncSession = Depends(get_session),
    admin: User = Depends(require_admin),
) -> TableRead:
    table_repo = SqlAlchemyTableRepository(session)
    try:
        async with session.begin():
            table = await table_usecase.update_table(
                table_repo,
                table_number=table_number,
                capacity=payload.capacity,
                notes=payload.notes,
                is_active=payload.is_active,
            )
    except ReservationError as exc:
        raise to_http_exception(exc) from exc

    audit_or_500(
        action="tables.updated",
        initiator="admin",
        actor_id=admin.id,
        extra={"table_number": table.table_number, "capacity": table.capacity, "is_active": table.is_active},
    )
    return TableRead.from_db(table=table)


@router.post("/tables/initialize", response_model=TablesInitialized)
async def initialize_tables(
    session: AsyncSession = Depends(get_session),
    admin: User = Depends(require_admin),
) -> TablesInitialized:
    table_repo = SqlAlchemyTableRepository(session)
    async with session.begin():
        created = await table_usecase.initialize_tables(table_repo)
    if created:
        audit_or_500(action="tables.initialized", initiator="admin", actor_id=admin.id, extra={"created": created})
    return TablesInitialized(created=created)

from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Path, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_settings
from ..deps import get_current_user, get_current_user_id, get_session
from ..domain.errors import ReservationError
from ..infrastructure.repositories import SqlAlchemyReservationRepository, SqlAlchemyTableRepository
from ..models import User
from ..schemas import ReservationCancel, ReservationCreate, ReservationRead, ReservationUpdate
from ..usecases import reservations as reservation_usecase
from .common import audit_or_500, booking_race_lost, extract_version, to_http_exception

router = APIRouter(prefix="", tags=["reservations"])


@router.post("/reservations", response_model=ReservationRead, status_code=status.HTTP_201_CREATED)
async def create_reservation(
    payload: ReservationCreate,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
) -> ReservationRead:
    table_repo = SqlAlchemyTableRepository(session)
    res_repo = SqlAlchemyReservationRepository(session)
    try:
        async with session.begin():
            reservation = await reservation_usecase.create_reservation(
                table_repo,
                res_repo,
                user=user,
                booking_date=payload.date,
                slot=payload.slot,
                guests=payload.guests,
                table_numbers=payload.table_numbers,
                contact_phone=payload.contact_phone,
                special_request=payload.special_request,
                suggestion_limit=get_settings().suggestion_limit,
            )
    except ReservationError as exc:
        raise to_http_exception(exc) from exc
    except IntegrityError as exc:
        raise booking_race_lost() from exc

    audit_or_500(
        action="reservation.created",
        initiator="user",
        actor_id=user.id,
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
    return ReservationRead.from_db(reservation=reservation)


@router.get("/me/reservations", response_model=List[ReservationRead])
async def list_my_reservations(
    session: AsyncSession = Depends(get_session),
    user_id: int = Depends(get_current_user_id),
) -> list[ReservationRead]:
    res_repo = SqlAlchemyReservationRepository(session)
    rows = await reservation_usecase.list_user_reservations(res_repo, user_id=user_id)
    return [ReservationRead.from_db(reservation=res) for res in rows]


@router.get("/me/reservations/{reservation_id}", response_model=ReservationRead)
async def get_my_reservation(
    reservation_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    user_id: int = Depends(get_current_user_id),
) -> ReservationRead:
    res_repo = SqlAlchemyReservationRepository(session)
    reservation = await reservation_usecase.get_user_reservation(
        res_repo, reservation_id=reservation_id, user_id=user_id
    )
    if reservation is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="reservation not found")
    return ReservationRead.from_db(reservation=reservation)


@router.patch("/me/reservations/{reservation_id}", response_model=ReservationRead)
async def modify_reservation(
    payload: ReservationUpdate,
    reservation_id: int = Path(..., ge=1),
    if_match: Optional[str] = Header(default=None),
    session: AsyncSession = Depends(get_session),
    user_id: int = Depends(get_current_user_id),
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
    )
    try:
        async with session.begin():
            reservation = await reservation_usecase.modify_reservation(
                table_repo,
                res_repo,
                reservation_id=reservation_id,
                user_id=user_id,
                patch=patch,
                version=version,
                suggestion_limit=get_settings().suggestion_limit,
            )
    except ReservationError as exc:
        raise to_http_exception(exc) from exc
    except IntegrityError as exc:
        raise booking_race_lost() from exc

    audit_or_500(
        action="reservation.modified",
        initiator="user",
        actor_id=user_id,
        reservation_id=reservation.id,
        reservation_number=reservation.reservation_number,
        user_id=reservation.user_id,
        booking_date=reservation.booking_date,
        slot=reservation.slot,
        table_numbers=reservation.table_numbers,
        guests=reservation.guests,
        version=reservation.version,
    )
    return ReservationRead.from_db(reservation=reservation)


@router.post("/me/reservations/{reservation_id}/cancel", response_model=ReservationRead)
async def cancel_reservation(
    payload: Optional[ReservationCancel] = None,
    reservation_id: int = Path(..., ge=1),
    if_match: Optional[str] = Header(default=None),
    session: AsyncSession = Depends(get_session),
    user_id: int = Depends(get_current_user_id),
) -> ReservationRead:
    version = extract_version(if_match, payload)
    table_repo = SqlAlchemyTableRepository(session)
    res_repo = SqlAlchemyReservationRepository(session)
    try:
        async with session.begin():
            reservation, previous = await reservation_usecase.cancel_reservation(
                table_repo,
                res_repo,
                reservation_id=reservation_id,
                user_id=user_id,
                version=version,
            )
    except ReservationError as exc:
        raise to_http_exception(exc) from exc

    audit_or_500(
        action="reservation.cancelled",
        initiator="user",
        actor_id=user_id,
        reservation_id=reservation.id,
        reservation_number=reservation.reservation_number,
        user_id=reservation.user_id,
        booking_date=reservation.booking_date,
        slot=reservation.slot,
        table_numbers=reservation.table_numbers,
        status_from=previous,
        status_to=reservation.status,
        version=reservation.version,
    )
    return ReservationRead.from_db(reservation=reservation)

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Optional, Sequence

from ..domain.errors import (
    BookingConflictError,
    CapacityError,
    InvalidStateError,
    ReservationNotFoundError,
    ReservationValidationError,
    VersionConflictError,
)
from ..domain.lifecycle import LIVE_STATUSES, Actor, check_transition, releases_tables
from ..domain.policies import check_modify_window, check_new_booking_time
from ..domain.repositories import ReservationRepository, TableRepository
from ..domain.services import build_reservation_number, validate_booking_request, validate_table_selection
from ..domain.slots import datetime_of
from ..models import Reservation, ReservationStatus, User
from ..utils.time import local_today, restaurant_tz, utc_now
from . import tables as table_usecase

logger = logging.getLogger(__name__)

SUGGESTION_LIMIT = 5


@dataclass(frozen=True)
class ReservationPatch:
    booking_date: Optional[date] = None
    slot: Optional[int] = None
    guests: Optional[int] = None
    table_numbers: Optional[Sequence[int]] = None
    special_request: Optional[str] = None
    contact_phone: Optional[str] = None
    notes: Optional[str] = None
    status: Optional[ReservationStatus] = None


def starts_at(booking_date: date, slot: int) -> datetime:
    start = datetime_of(booking_date, slot, restaurant_tz())
    if start is None:
        raise ReservationValidationError(f"slot must be between 1 and 15, got {slot}")
    return start


def _check_version(reservation: Reservation, version: int | None) -> None:
    if version is not None and reservation.version != version:
        raise VersionConflictError("version mismatch")


async def _validate_capacity(
    table_repo: TableRepository,
    res_repo: ReservationRepository,
    *,
    table_numbers: Sequence[int],
    guests: int,
    booking_date: date,
    slot: int,
    exclude_reservation_id: int | None,
    suggestion_limit: int,
) -> int:
    tables = await table_repo.get_many(table_numbers)
    try:
        return validate_table_selection(
            list(table_numbers),
            [table_usecase.snapshot(t) for t in tables],
            guests=guests,
        )
    except CapacityError as exc:
        exc.suggestions = await table_usecase.suggest_tables(
            table_repo,
            res_repo,
            booking_date=booking_date,
            slot=slot,
            guests=guests,
            limit=suggestion_limit,
            exclude_reservation_id=exclude_reservation_id,
        )
        raise


async def _ensure_tables_free(
    table_repo: TableRepository,
    res_repo: ReservationRepository,
    *,
    table_numbers: Sequence[int],
    guests: int,
    booking_date: date,
    slot: int,
    exclude_reservation_id: int | None,
    suggestion_limit: int,
) -> None:
    availability = await table_usecase.find_available_tables(
        table_repo,
        res_repo,
        booking_date=booking_date,
        slot=slot,
        guests=guests,
        exclude_reservation_id=exclude_reservation_id,
    )
    taken = sorted(n for n in table_numbers if n in availability.occupied)
    if taken:
        raise BookingConflictError(
            f"table(s) {', '.join(map(str, taken))} already booked for this time",
            suggestions=availability.available[:suggestion_limit],
        )


async def _rebook(
    table_repo: TableRepository,
    reservation: Reservation,
    *,
    booking_date: date,
    slot: int,
    table_numbers: Sequence[int],
) -> None:
    # Old booking goes first so a table kept across the change can be re-occupied.
    await table_usecase.release_tables(
        table_repo,
        reservation.table_numbers,
        booking_date=reservation.booking_date,
        slot=reservation.slot,
        reservation_id=reservation.id,
    )
    await table_usecase.occupy_tables(
        table_repo,
        table_numbers,
        booking_date=booking_date,
        slot=slot,
        reservation_id=reservation.id,
    )


async def _apply_transition(
    table_repo: TableRepository,
    reservation: Reservation,
    target: ReservationStatus,
    actor: Actor,
    *,
    now: datetime,
) -> ReservationStatus:
    previous = reservation.status
    check_transition(
        previous,
        target,
        actor,
        starts_at=starts_at(reservation.booking_date, reservation.slot),
        now=now,
    )
    if releases_tables(previous, target):
        await table_usecase.release_tables(
            table_repo,
            reservation.table_numbers,
            booking_date=reservation.booking_date,
            slot=reservation.slot,
            reservation_id=reservation.id,
        )
    reservation.status = target
    return previous


async def create_reservation(
    table_repo: TableRepository,
    res_repo: ReservationRepository,
    *,
    user: User,
    booking_date: date,
    slot: int,
    guests: int,
    table_numbers: Sequence[int],
    contact_phone: str,
    special_request: str | None = None,
    actor: Actor = Actor.USER,
    now: datetime | None = None,
    suggestion_limit: int = SUGGESTION_LIMIT,
) -> Reservation:
    now = now or utc_now()
    validate_booking_request(booking_date=booking_date, slot=slot, guests=guests, today=local_today(now))
    if actor is Actor.USER:
        check_new_booking_time(starts_at(booking_date, slot), now)

    requested = list(table_numbers)
    common: dict[str, Any] = dict(
        guests=guests,
        booking_date=booking_date,
        slot=slot,
        exclude_reservation_id=None,
        suggestion_limit=suggestion_limit,
    )
    await _validate_capacity(table_repo, res_repo, table_numbers=requested, **common)
    await _ensure_tables_free(table_repo, res_repo, table_numbers=requested, **common)

    reservation = await res_repo.create(
        user_id=user.id,
        user_email=user.email,
        user_name=user.name,
        reservation_number=build_reservation_number(booking_date, slot, requested),
        booking_date=booking_date,
        slot=slot,
        guests=guests,
        table_numbers=sorted(requested),
        status=ReservationStatus.CONFIRMED,
        special_request=special_request,
        contact_phone=contact_phone,
    )
    await table_usecase.occupy_tables(
        table_repo,
        requested,
        booking_date=booking_date,
        slot=slot,
        reservation_id=reservation.id,
    )
    logger.info("reservation %s created (%s)", reservation.id, reservation.reservation_number)
    return reservation


async def modify_reservation(
    table_repo: TableRepository,
    res_repo: ReservationRepository,
    *,
    reservation_id: int,
    user_id: int,
    patch: ReservationPatch,
    version: int | None = None,
    now: datetime | None = None,
    suggestion_limit: int = SUGGESTION_LIMIT,
) -> Reservation:
    now = now or utc_now()
    reservation = await res_repo.get_for_user_for_update(reservation_id, user_id)
    if reservation is None:
        raise ReservationNotFoundError("reservation not found")
    if reservation.status != ReservationStatus.CONFIRMED:
        raise InvalidStateError("only confirmed reservations can be modified")
    _check_version(reservation, version)

    check_modify_window(starts_at(reservation.booking_date, reservation.slot), now)

    new_date = patch.booking_date or reservation.booking_date
    new_slot = patch.slot if patch.slot is not None else reservation.slot
    new_guests = patch.guests if patch.guests is not None else reservation.guests
    new_tables = sorted(patch.table_numbers) if patch.table_numbers is not None else list(reservation.table_numbers)
    validate_booking_request(booking_date=new_date, slot=new_slot, guests=new_guests, today=local_today(now))

    time_changed = new_date != reservation.booking_date or new_slot != reservation.slot
    tables_changed = new_tables != sorted(reservation.table_numbers)
    if time_changed:
        check_new_booking_time(starts_at(new_date, new_slot), now)

    common: dict[str, Any] = dict(
        guests=new_guests,
        booking_date=new_date,
        slot=new_slot,
        exclude_reservation_id=reservation.id,
        suggestion_limit=suggestion_limit,
    )
    await _validate_capacity(table_repo, res_repo, table_numbers=new_tables, **common)
    if time_changed or tables_changed:
        await _ensure_tables_free(table_repo, res_repo, table_numbers=new_tables, **common)
        await _rebook(table_repo, reservation, booking_date=new_date, slot=new_slot, table_numbers=new_tables)

    reservation.booking_date = new_date
    reservation.slot = new_slot
    reservation.guests = new_guests
    reservation.table_numbers = new_tables
    if patch.special_request is not None:
        reservation.special_request = patch.special_request
    if patch.contact_phone is not None:
        reservation.contact_phone = patch.contact_phone
    reservation.version += 1
    return await res_repo.save(reservation)


async def cancel_reservation(
    table_repo: TableRepository,
    res_repo: ReservationRepository,
    *,
    reservation_id: int,
    user_id: int,
    version: int | None = None,
    now: datetime | None = None,
) -> tuple[Reservation, ReservationStatus]:
    """Cancel on behalf of the owner. Returns the reservation and its previous status."""
    now = now or utc_now()
    reservation = await res_repo.get_for_user_for_update(reservation_id, user_id)
    if reservation is None:
        raise ReservationNotFoundError("reservation not found")
    _check_version(reservation, version)
    previous = await _apply_transition(table_repo, reservation, ReservationStatus.CANCELLED, Actor.USER, now=now)
    reservation.version += 1
    updated = await res_repo.save(reservation)
    logger.info("reservation %s cancelled by owner", reservation.id)
    return updated, previous


async def set_reservation_status(
    table_repo: TableRepository,
    res_repo: ReservationRepository,
    *,
    reservation_id: int,
    status: ReservationStatus,
    now: datetime | None = None,
) -> tuple[Reservation, ReservationStatus]:
    now = now or utc_now()
    reservation = await res_repo.get_for_update(reservation_id)
    if reservation is None:
        raise ReservationNotFoundError("reservation not found")
    if reservation.status == status:
        return reservation, status
    previous = await _apply_transition(table_repo, reservation, status, Actor.ADMIN, now=now)
    reservation.version += 1
    updated = await res_repo.save(reservation)
    logger.info("reservation %s moved from %s to %s by admin", reservation.id, previous, status)
    return updated, previous


async def reassign_reservation(
    table_repo: TableRepository,
    res_repo: ReservationRepository,
    *,
    reservation_id: int,
    patch: ReservationPatch,
    version: int | None = None,
    now: datetime | None = None,
    suggestion_limit: int = SUGGESTION_LIMIT,
) -> tuple[Reservation, ReservationStatus]:
    """Administrative edit. Skips user time windows but keeps the capacity and conflict rules."""
    now = now or utc_now()
    reservation = await res_repo.get_for_update(reservation_id)
    if reservation is None:
        raise ReservationNotFoundError("reservation not found")
    _check_version(reservation, version)
    previous = reservation.status

    new_date = patch.booking_date or reservation.booking_date
    new_slot = patch.slot if patch.slot is not None else reservation.slot
    new_guests = patch.guests if patch.guests is not None else reservation.guests
    new_tables = sorted(patch.table_numbers) if patch.table_numbers is not None else list(reservation.table_numbers)

    time_changed = new_date != reservation.booking_date or new_slot != reservation.slot
    tables_changed = new_tables != sorted(reservation.table_numbers)
    booking_changed = time_changed or tables_changed or new_guests != reservation.guests

    if booking_changed:
        if reservation.status not in LIVE_STATUSES:
            raise InvalidStateError(f"cannot change the booking of a {reservation.status} reservation")
        validate_booking_request(booking_date=new_date, slot=new_slot, guests=new_guests, today=local_today(now))
        common: dict[str, Any] = dict(
            guests=new_guests,
            booking_date=new_date,
            slot=new_slot,
            exclude_reservation_id=reservation.id,
            suggestion_limit=suggestion_limit,
        )
        await _validate_capacity(table_repo, res_repo, table_numbers=new_tables, **common)
        if time_changed or tables_changed:
            await _ensure_tables_free(table_repo, res_repo, table_numbers=new_tables, **common)
            await _rebook(table_repo, reservation, booking_date=new_date, slot=new_slot, table_numbers=new_tables)
        reservation.booking_date = new_date
        reservation.slot = new_slot
        reservation.guests = new_guests
        reservation.table_numbers = new_tables

    if patch.special_request is not None:
        reservation.special_request = patch.special_request
    if patch.contact_phone is not None:
        reservation.contact_phone = patch.contact_phone
    if patch.notes is not None:
        reservation.notes = patch.notes
    if patch.status is not None and patch.status != reservation.status:
        await _apply_transition(table_repo, reservation, patch.status, Actor.ADMIN, now=now)

    reservation.version += 1
    updated = await res_repo.save(reservation)
    logger.info("reservation %s updated by admin", reservation.id)
    return updated, previous


async def list_user_reservations(
    res_repo: ReservationRepository,
    *,
    user_id: int,
) -> list[Reservation]:
    return await res_repo.list_by_user(user_id)


async def get_user_reservation(
    res_repo: ReservationRepository,
    *,
    reservation_id: int,
    user_id: int,
) -> Reservation | None:
    return await res_repo.get_for_user(reservation_id, user_id)


async def reservation_stats(res_repo: ReservationRepository) -> dict[str, Any]:
    counts = await res_repo.count_by_status()
    return {
        "total": sum(counts.values()),
        "by_status": {str(status): counts.get(status, 0) for status in ReservationStatus},
    }

import datetime as dt
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_serializer

from .domain.services import TableAvailability
from .domain.slots import label_of
from .models import DiningTable, Reservation, ReservationStatus
from .utils.time import utc_naive_to_local

PHONE_PATTERN = r"^[0-9]{10}$"


class ReservationCreate(BaseModel):
    date: dt.date
    slot: int = Field(ge=1, le=15)
    guests: int = Field(ge=1, le=20)
    # Empty and repeated selections are rejected by the capacity rules.
    table_numbers: List[int]
    special_request: Optional[str] = Field(default=None, max_length=200)
    contact_phone: str = Field(pattern=PHONE_PATTERN)


class AdminReservationCreate(ReservationCreate):
    user_id: int = Field(ge=1)


class ReservationUpdate(BaseModel):
    date: Optional[dt.date] = None
    slot: Optional[int] = Field(default=None, ge=1, le=15)
    guests: Optional[int] = Field(default=None, ge=1, le=20)
    table_numbers: Optional[List[int]] = None
    special_request: Optional[str] = Field(default=None, max_length=200)
    contact_phone: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)
    version: Optional[int] = Field(default=None, ge=1)


class AdminReservationUpdate(ReservationUpdate):
    notes: Optional[str] = Field(default=None, max_length=300)
    status: Optional[ReservationStatus] = None


class ReservationCancel(BaseModel):
    version: Optional[int] = Field(default=None, ge=1)


class ReservationStatusUpdate(BaseModel):
    status: ReservationStatus


class ReservationRead(BaseModel):
    reservation_id: int
    reservation_number: str
    user_id: int
    user_name: str
    date: dt.date
    slot: int
    time: Optional[str]
    guests: int
    table_numbers: List[int]
    status: ReservationStatus
    special_request: Optional[str]
    contact_phone: str
    notes: Optional[str] = None
    version: int
    created_at: dt.datetime
    updated_at: dt.datetime

    @field_serializer("created_at", "updated_at")
    def _ser_datetime(self, value: dt.datetime) -> str:
        return value.isoformat()

    @classmethod
    def from_db(cls, *, reservation: Reservation, include_notes: bool = False) -> "ReservationRead":
        return cls(
            reservation_id=reservation.id,
            reservation_number=reservation.reservation_number,
            user_id=reservation.user_id,
            user_name=reservation.user_name,
            date=reservation.booking_date,
            slot=reservation.slot,
            time=label_of(reservation.slot),
            guests=reservation.guests,
            table_numbers=list(reservation.table_numbers),
            status=reservation.status,
            special_request=reservation.special_request,
            contact_phone=reservation.contact_phone,
            notes=reservation.notes if include_notes else None,
            version=reservation.version,
            created_at=utc_naive_to_local(reservation.created_at),
            updated_at=utc_naive_to_local(reservation.updated_at),
        )


class ReservationStats(BaseModel):
    total: int
    by_status: Dict[str, int]


class TableRead(BaseModel):
    table_number: int
    capacity: int
    is_active: bool
    notes: Optional[str]

    @classmethod
    def from_db(cls, *, table: DiningTable) -> "TableRead":
        return cls(
            table_number=table.table_number,
            capacity=table.capacity,
            is_active=table.is_active,
            notes=table.notes,
        )


class TableUpdate(BaseModel):
    capacity: Optional[int] = Field(default=None, ge=1, le=12)
    notes: Optional[str] = Field(default=None, max_length=200)
    is_active: Optional[bool] = None


class TablesInitialized(BaseModel):
    created: int


class TableAvailabilityRead(BaseModel):
    available_tables: List[int]
    occupied_tables: List[int]
    not_eligible_tables: List[int]

    @classmethod
    def from_domain(cls, availability: TableAvailability) -> "TableAvailabilityRead":
        return cls(
            available_tables=availability.available,
            occupied_tables=availability.occupied,
            not_eligible_tables=availability.not_eligible,
        )


class TableCalendarRead(BaseModel):
    table_number: int
    capacity: int
    booked_slots: List[int]
    available_slots: List[int]
    is_fully_booked: bool

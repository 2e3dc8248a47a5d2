from __future__ import annotations

from datetime import date, datetime
from enum import StrEnum
from typing import Optional

from sqlalchemy import JSON, CheckConstraint, Enum, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql.sqltypes import BigInteger, Boolean, Date, DateTime, Integer, String


class Base(DeclarativeBase):
    pass


class UserRole(StrEnum):
    CUSTOMER = "customer"
    ADMIN = "admin"


class ReservationStatus(StrEnum):
    CONFIRMED = "confirmed"
    SEATED = "seated"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"


# SQLite only autoincrements INTEGER PRIMARY KEY columns.
_ID_TYPE = BigInteger().with_variant(Integer, "sqlite")


def _enum_column(enum_cls: type[StrEnum]) -> Enum:
    return Enum(
        enum_cls,
        values_callable=lambda cls: [e.value for e in cls],
        native_enum=False,
    )


class User(Base):
    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("email", name="uq_users_email"),)

    id: Mapped[int] = mapped_column(_ID_TYPE, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    role: Mapped[UserRole] = mapped_column(_enum_column(UserRole), nullable=False, default=UserRole.CUSTOMER)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)


class DiningTable(Base):
    __tablename__ = "dining_tables"
    __table_args__ = (
        UniqueConstraint("table_number", name="uq_dining_tables_number"),
        CheckConstraint("table_number BETWEEN 1 AND 22", name="chk_tables_number"),
        CheckConstraint("capacity BETWEEN 1 AND 12", name="chk_tables_capacity"),
    )

    id: Mapped[int] = mapped_column(_ID_TYPE, primary_key=True, autoincrement=True)
    table_number: Mapped[int] = mapped_column(Integer, nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=4)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notes: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)


class Reservation(Base):
    __tablename__ = "reservations"
    __table_args__ = (
        CheckConstraint("guests BETWEEN 1 AND 20", name="chk_res_guests"),
        CheckConstraint("slot BETWEEN 1 AND 15", name="chk_res_slot"),
        Index("idx_res_user", "user_id"),
        Index("idx_res_date_slot", "booking_date", "slot"),
        Index("idx_res_number", "reservation_number"),
    )

    id: Mapped[int] = mapped_column(_ID_TYPE, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    user_email: Mapped[str] = mapped_column(String(255), nullable=False)
    user_name: Mapped[str] = mapped_column(String(255), nullable=False)
    reservation_number: Mapped[str] = mapped_column(String(64), nullable=False)
    booking_date: Mapped[date] = mapped_column(Date, nullable=False)
    slot: Mapped[int] = mapped_column(Integer, nullable=False)
    guests: Mapped[int] = mapped_column(Integer, nullable=False)
    table_numbers: Mapped[list[int]] = mapped_column(JSON, nullable=False)
    status: Mapped[ReservationStatus] = mapped_column(
        _enum_column(ReservationStatus),
        nullable=False,
        default=ReservationStatus.CONFIRMED,
    )
    special_request: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    contact_phone: Mapped[str] = mapped_column(String(10), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(String(300), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)


class TableSlotBooking(Base):
    """One occupied slot of one table on one date.

    The unique constraint is the authoritative double-booking guard: two
    reservations can never hold the same (table, date, slot) cell.
    """

    __tablename__ = "table_slot_bookings"
    __table_args__ = (
        UniqueConstraint("table_number", "booking_date", "slot", name="uq_table_slot_bookings"),
        CheckConstraint("slot BETWEEN 1 AND 15", name="chk_bookings_slot"),
        Index("idx_bookings_date", "booking_date"),
        Index("idx_bookings_reservation", "reservation_id"),
    )

    id: Mapped[int] = mapped_column(_ID_TYPE, primary_key=True, autoincrement=True)
    table_number: Mapped[int] = mapped_column(
        ForeignKey("dining_tables.table_number", ondelete="CASCADE"), nullable=False
    )
    booking_date: Mapped[date] = mapped_column(Date, nullable=False)
    slot: Mapped[int] = mapped_column(Integer, nullable=False)
    reservation_id: Mapped[int] = mapped_column(ForeignKey("reservations.id", ondelete="CASCADE"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

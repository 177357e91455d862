from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
)
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator


class UTCDateTime(TypeDecorator[datetime]):
    """Stores naive UTC and always hands back timezone-aware UTC values."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC).replace(tzinfo=None)

    def process_result_value(self, value: Any, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(200))
    email: Mapped[str] = mapped_column(String(320), unique=True)
    role: Mapped[str] = mapped_column(String(20), default="tenant")

    reservations: Mapped[list[Reservation]] = relationship(back_populates="user")

    __table_args__ = (CheckConstraint("role IN ('tenant', 'owner', 'admin')", name="ck_users_role"),)


class Amenity(Base):
    __tablename__ = "amenities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(200))
    capacity: Mapped[int] = mapped_column(Integer)
    max_duration: Mapped[int] = mapped_column(Integer)  # minutes

    reservations: Mapped[list[Reservation]] = relationship(back_populates="amenity")

    __table_args__ = (
        CheckConstraint("capacity >= 1", name="ck_amenities_capacity"),
        CheckConstraint("max_duration >= 1", name="ck_amenities_max_duration"),
    )


class Reservation(Base):
    __tablename__ = "reservations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), index=True)
    amenity_id: Mapped[int] = mapped_column(ForeignKey("amenities.id", ondelete="RESTRICT"))
    start_time: Mapped[datetime] = mapped_column(UTCDateTime)
    end_time: Mapped[datetime] = mapped_column(UTCDateTime)
    status: Mapped[str] = mapped_column(String(20), default="confirmed")
    hidden_from_user: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=_utcnow)

    user: Mapped[User] = relationship(back_populates="reservations")
    amenity: Mapped[Amenity] = relationship(back_populates="reservations")

    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_reservations_time_range"),
        CheckConstraint("status IN ('pending', 'confirmed', 'cancelled')", name="ck_reservations_status"),
        Index("ix_reservations_amenity_window", "amenity_id", "start_time", "end_time"),
    )


# Amenity names are unique regardless of case
Index("uq_amenities_name_lower", func.lower(Amenity.name), unique=True)

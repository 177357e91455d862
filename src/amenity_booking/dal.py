from __future__ import annotations

import threading
import time
import weakref
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Any

from aws_lambda_powertools import Logger
from sqlalchemy import delete, func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload, sessionmaker

from . import config, orm
from .errors import StoreFailure
from .models import (
    AdminReservation,
    Amenity,
    Reservation,
    ReservationFilter,
    ReservationStatus,
    ReservationWithAmenity,
    ReservationWithUser,
    Role,
    UserDetail,
    UserSummary,
)

logger = Logger()

RESERVATION_NOT_FOUND = "Reservation not found"

_CONFIRMED = ReservationStatus.CONFIRMED.value


def _overlaps(start: datetime, end: datetime) -> list[Any]:
    # [a, b) and [c, d) overlap iff a < d and c < b
    return [orm.Reservation.start_time < end, orm.Reservation.end_time > start]


def _criteria(flt: ReservationFilter) -> list[Any]:
    criteria: list[Any] = []
    if flt.user_id is not None:
        criteria.append(orm.Reservation.user_id == flt.user_id)
    if flt.amenity_id is not None:
        criteria.append(orm.Reservation.amenity_id == flt.amenity_id)
    if flt.status is not None:
        criteria.append(orm.Reservation.status == flt.status.value)
    if flt.hidden_from_user is not None:
        criteria.append(orm.Reservation.hidden_from_user == flt.hidden_from_user)
    if flt.start_from is not None:
        criteria.append(orm.Reservation.start_time >= flt.start_from)
    if flt.start_before is not None:
        criteria.append(orm.Reservation.start_time < flt.start_before)
    if flt.end_from is not None:
        criteria.append(orm.Reservation.end_time >= flt.end_from)
    if flt.end_before is not None:
        criteria.append(orm.Reservation.end_time < flt.end_before)
    return criteria


class ReservationRepository:
    """Store queries issued by the admission engine, bound to one session."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def find_amenity(self, amenity_id: int) -> Amenity | None:
        row = self.session.get(orm.Amenity, amenity_id)
        return _amenity_to_model(row) if row is not None else None

    def list_amenities(self) -> list[Amenity]:
        rows = self.session.scalars(select(orm.Amenity).order_by(orm.Amenity.name))
        return [_amenity_to_model(row) for row in rows]

    def get_reservation(self, reservation_id: int) -> Reservation | None:
        row = self.session.get(orm.Reservation, reservation_id)
        return _to_model(row) if row is not None else None

    def count_overlapping_confirmed(self, amenity_id: int, start: datetime, end: datetime) -> int:
        stmt = (
            select(func.count())
            .select_from(orm.Reservation)
            .where(
                orm.Reservation.amenity_id == amenity_id,
                orm.Reservation.status == _CONFIRMED,
                *_overlaps(start, end),
            )
        )
        return int(self.session.scalar(stmt) or 0)

    def find_overlapping_confirmed_for_user(
        self, user_id: int, start: datetime, end: datetime
    ) -> Reservation | None:
        stmt = (
            select(orm.Reservation)
            .where(
                orm.Reservation.user_id == user_id,
                orm.Reservation.status == _CONFIRMED,
                *_overlaps(start, end),
            )
            .limit(1)
        )
        row = self.session.scalars(stmt).first()
        return _to_model(row) if row is not None else None

    def find_same_day_confirmed_for_user_amenity(
        self, user_id: int, amenity_id: int, day_start: datetime, day_end: datetime
    ) -> Reservation | None:
        """First confirmed booking of the amenity by the user starting in ``[day_start, day_end)``."""
        stmt = (
            select(orm.Reservation)
            .where(
                orm.Reservation.user_id == user_id,
                orm.Reservation.amenity_id == amenity_id,
                orm.Reservation.status == _CONFIRMED,
                orm.Reservation.start_time >= day_start,
                orm.Reservation.start_time < day_end,
            )
            .limit(1)
        )
        row = self.session.scalars(stmt).first()
        return _to_model(row) if row is not None else None

    def insert_reservation(
        self,
        user_id: int,
        amenity_id: int,
        start: datetime,
        end: datetime,
        status: ReservationStatus,
    ) -> Reservation:
        row = orm.Reservation(
            user_id=user_id,
            amenity_id=amenity_id,
            start_time=start,
            end_time=end,
            status=status.value,
            hidden_from_user=False,
        )
        self.session.add(row)
        self.session.flush()
        logger.info("Inserted reservation", extra={"reservation_id": row.id, "amenity_id": amenity_id})
        return _to_model(row)

    def update_reservation_status(self, reservation_id: int, status: ReservationStatus) -> Reservation:
        row = self._get_row(reservation_id)
        row.status = status.value
        self.session.flush()
        return _to_model(row)

    def update_reservation_visibility(self, reservation_id: int, hidden: bool) -> Reservation:
        row = self._get_row(reservation_id)
        row.hidden_from_user = hidden
        self.session.flush()
        return _to_model(row)

    def list_reservations(self, flt: ReservationFilter) -> list[Any]:
        stmt = select(orm.Reservation).where(*_criteria(flt))

        if flt.include in ("amenity", "all"):
            stmt = stmt.options(selectinload(orm.Reservation.amenity))
        if flt.include in ("user", "all"):
            stmt = stmt.options(selectinload(orm.Reservation.user))

        if flt.order_by == "-created_at":
            stmt = stmt.order_by(orm.Reservation.created_at.desc(), orm.Reservation.id.desc())
        elif flt.order_by == "-start_time":
            stmt = stmt.order_by(orm.Reservation.start_time.desc(), orm.Reservation.id.desc())
        else:
            stmt = stmt.order_by(orm.Reservation.start_time.asc(), orm.Reservation.id.asc())

        if flt.limit is not None:
            stmt = stmt.limit(flt.limit)

        rows = self.session.scalars(stmt).all()
        if flt.include == "amenity":
            return [_with_amenity(row) for row in rows]
        if flt.include == "user":
            return [_with_user(row) for row in rows]
        if flt.include == "all":
            return [_admin_view(row) for row in rows]
        return [_to_model(row) for row in rows]

    def count_reservations(self, flt: ReservationFilter) -> int:
        """Number of rows matching ``flt``, ignoring its limit."""
        stmt = select(func.count()).select_from(orm.Reservation).where(*_criteria(flt))
        return int(self.session.scalar(stmt) or 0)

    def delete_reservations(self, before: datetime, status: ReservationStatus | None = None) -> int:
        stmt = delete(orm.Reservation).where(orm.Reservation.end_time < before)
        if status is not None:
            stmt = stmt.where(orm.Reservation.status == status.value)
        result = self.session.execute(stmt)
        return int(result.rowcount or 0)

    def _get_row(self, reservation_id: int) -> orm.Reservation:
        row = self.session.get(orm.Reservation, reservation_id)
        if row is None:
            raise KeyError(RESERVATION_NOT_FOUND)
        return row


class _KeyedLocks:
    """One lock per key, kept only while some caller still references it."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: weakref.WeakValueDictionary[str, _Lock] = weakref.WeakValueDictionary()

    def get(self, key: str) -> _Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = _Lock()
                self._locks[key] = lock
            return lock

    def __len__(self) -> int:
        return len(self._locks)


class _Lock:
    # weakly referenceable handle around a threading.Lock
    __slots__ = ("_lock", "__weakref__")

    def __init__(self) -> None:
        self._lock = threading.Lock()

    def acquire(self, timeout: float = -1) -> bool:
        return self._lock.acquire(timeout=timeout)

    def release(self) -> None:
        self._lock.release()


class ReservationStore:
    """Hands out repositories, one per unit of work.

    ``serializable`` is the admission path: it holds in-process locks on the
    amenity and the user for the whole unit of work and runs it at SERIALIZABLE
    isolation, so the conflict checks and the insert are atomic with respect to
    other bookings of the same amenity or by the same user.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory
        self._locks = _KeyedLocks()

    @contextmanager
    def session(self, timeout: float | None = None) -> Iterator[ReservationRepository]:
        with self._unit_of_work(_resolve_timeout(timeout)) as repo:
            yield repo

    @contextmanager
    def serializable(
        self, *, amenity_id: int, user_id: int, timeout: float | None = None
    ) -> Iterator[ReservationRepository]:
        deadline = time.monotonic() + _resolve_timeout(timeout)
        # fixed acquisition order: "amenity:*" always sorts before "user:*"
        keys = sorted((f"amenity:{amenity_id}", f"user:{user_id}"))
        held: list[_Lock] = []
        try:
            for key in keys:
                lock = self._locks.get(key)
                if not lock.acquire(timeout=max(0.0, deadline - time.monotonic())):
                    logger.warning("Timed out waiting for admission lock", extra={"lock": key})
                    raise StoreFailure()
                held.append(lock)
            remaining = max(0.0, deadline - time.monotonic())
            with self._unit_of_work(remaining, isolation_level="SERIALIZABLE") as repo:
                yield repo
        finally:
            for lock in reversed(held):
                lock.release()

    @contextmanager
    def _unit_of_work(
        self, timeout: float, isolation_level: str | None = None
    ) -> Iterator[ReservationRepository]:
        session = self._session_factory()
        try:
            if isolation_level is not None:
                session.connection(execution_options={"isolation_level": isolation_level})
            _apply_statement_timeout(session, timeout)
            yield ReservationRepository(session)
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.exception("Reservation store failure")
            raise StoreFailure() from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


def _resolve_timeout(timeout: float | None) -> float:
    return config.STORE_TIMEOUT_SECONDS if timeout is None else timeout


def _apply_statement_timeout(session: Session, timeout: float) -> None:
    bind = session.get_bind()
    if bind.dialect.name == "postgresql":
        # SET does not accept bound parameters
        session.execute(text(f"SET LOCAL statement_timeout = {max(1, int(timeout * 1000))}"))


def _amenity_to_model(row: orm.Amenity) -> Amenity:
    return Amenity(id=row.id, name=row.name, capacity=row.capacity, max_duration=row.max_duration)


def _reservation_fields(row: orm.Reservation) -> dict[str, Any]:
    return {
        "id": row.id,
        "user_id": row.user_id,
        "amenity_id": row.amenity_id,
        "start_time": row.start_time,
        "end_time": row.end_time,
        "status": ReservationStatus(row.status),
        "hidden_from_user": row.hidden_from_user,
        "created_at": row.created_at,
    }


def _to_model(row: orm.Reservation) -> Reservation:
    return Reservation(**_reservation_fields(row))


def _with_amenity(row: orm.Reservation) -> ReservationWithAmenity:
    return ReservationWithAmenity(**_reservation_fields(row), amenity=_amenity_to_model(row.amenity))


def _with_user(row: orm.Reservation) -> ReservationWithUser:
    return ReservationWithUser(
        **_reservation_fields(row),
        user=UserSummary(id=row.user.id, name=row.user.name),
    )


def _admin_view(row: orm.Reservation) -> AdminReservation:
    return AdminReservation(
        **_reservation_fields(row),
        user=UserDetail(id=row.user.id, name=row.user.name, email=row.user.email, role=Role(row.user.role)),
        amenity=_amenity_to_model(row.amenity),
    )

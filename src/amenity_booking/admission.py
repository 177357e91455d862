from __future__ import annotations

from datetime import UTC, date, datetime, time, timedelta

from aws_lambda_powertools import Logger

from . import config
from .dal import ReservationStore
from .errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    RejectionKind,
    ValidationError,
)
from .models import (
    AdminReservation,
    Amenity,
    AmenityReservationList,
    Identity,
    Reservation,
    ReservationFilter,
    ReservationStatus,
    ReservationWithAmenity,
    ReservationWithUser,
)

logger = Logger()

_STATUS_VALUES = frozenset(s.value for s in ReservationStatus)


def parse_timestamp(value: datetime | str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(value.strip())
        except (AttributeError, ValueError) as exc:
            raise ValidationError(RejectionKind.INVALID_DATE_FORMAT, "Invalid date format") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    try:
        return parsed.astimezone(UTC)
    except OverflowError as exc:
        # e.g. 9999-12-31T23:00:00-05:00 has no UTC representation
        raise ValidationError(RejectionKind.INVALID_DATE_FORMAT, "Invalid date format") from exc


def utc_day_bounds(moment: datetime) -> tuple[datetime, datetime]:
    """Return ``[midnight, next midnight)`` of the UTC calendar day containing ``moment``."""
    day = moment.astimezone(UTC).date()
    day_end = _day_after(day)
    if day_end is None:
        raise ValidationError(RejectionKind.INVALID_DATE_FORMAT, "Invalid date format")
    return _day_start(day), day_end


def _day_start(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=UTC)


def _day_after(day: date) -> datetime | None:
    # None for the last representable day
    if day == date.max:
        return None
    return _day_start(day + timedelta(days=1))


class ReservationAdmission:
    """Decides whether a proposed reservation may be booked and drives its lifecycle.

    The engine holds no state of its own: every decision re-reads the store
    handed to it at construction.
    """

    def __init__(self, store: ReservationStore) -> None:
        self.store = store

    def propose(
        self,
        caller: Identity,
        amenity_id: int | None,
        start_time: datetime | str | None,
        end_time: datetime | str | None,
        timeout: float | None = None,
    ) -> Reservation:
        # Rules are evaluated in order; the first failing rule is reported.
        if not amenity_id or not start_time or not end_time:
            raise ValidationError(RejectionKind.MISSING_PARAMETERS, "Missing parameters")
        start = parse_timestamp(start_time)
        end = parse_timestamp(end_time)

        with self.store.session(timeout) as repo:
            amenity = repo.find_amenity(amenity_id)
        if amenity is None:
            raise NotFoundError(RejectionKind.AMENITY_NOT_FOUND, "Amenity not found")

        duration_minutes = (end - start).total_seconds() / 60
        if duration_minutes > amenity.max_duration:
            raise ValidationError(
                RejectionKind.DURATION_EXCEEDED,
                f"Max duration for {amenity.name} is {amenity.max_duration} minutes",
            )

        if start >= end:
            raise ValidationError(RejectionKind.INVALID_TIME_RANGE, "Start time must be before end time")

        day_start, day_end = utc_day_bounds(start)

        with self.store.serializable(amenity_id=amenity.id, user_id=caller.id, timeout=timeout) as repo:
            if repo.find_overlapping_confirmed_for_user(caller.id, start, end) is not None:
                raise ConflictError(
                    RejectionKind.USER_TIME_CONFLICT, "You already have a reservation during this time"
                )

            same_day = repo.find_same_day_confirmed_for_user_amenity(caller.id, amenity.id, day_start, day_end)
            if same_day is not None:
                raise ConflictError(
                    RejectionKind.DUPLICATE_AMENITY_PER_DAY,
                    f"You already have a reservation for {amenity.name} on this day",
                )

            if repo.count_overlapping_confirmed(amenity.id, start, end) >= amenity.capacity:
                raise ConflictError(RejectionKind.CAPACITY_FULL, "Time slot full")

            reservation = repo.insert_reservation(
                caller.id, amenity.id, start, end, ReservationStatus.CONFIRMED
            )

        logger.info(
            "Reservation confirmed",
            extra={"reservation_id": reservation.id, "user_id": caller.id, "amenity_id": amenity.id},
        )
        return reservation

    def cancel(self, caller: Identity, reservation_id: int, timeout: float | None = None) -> Reservation:
        # Cancelling twice re-applies the same update
        with self.store.session(timeout) as repo:
            self._owned(repo.get_reservation(reservation_id), caller)
            return repo.update_reservation_status(reservation_id, ReservationStatus.CANCELLED)

    def hide(self, caller: Identity, reservation_id: int, timeout: float | None = None) -> Reservation:
        with self.store.session(timeout) as repo:
            self._owned(repo.get_reservation(reservation_id), caller)
            return repo.update_reservation_visibility(reservation_id, True)

    def list_user_reservations(self, caller: Identity) -> list[ReservationWithAmenity]:
        flt = ReservationFilter(user_id=caller.id, hidden_from_user=False, include="amenity")
        with self.store.session() as repo:
            return repo.list_reservations(flt)

    def list_amenity_reservations(
        self,
        caller: Identity,
        amenity_id: int,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[ReservationWithUser]:
        flt = amenity_view_filter(amenity_id, start_date, end_date)
        logger.debug("Listing amenity reservations", extra={"amenity_id": amenity_id, "caller": caller.id})
        with self.store.session() as repo:
            return repo.list_reservations(flt)

    def list_amenities(self, caller: Identity) -> list[Amenity]:
        with self.store.session() as repo:
            return repo.list_amenities()

    def list_all_reservations(
        self,
        caller: Identity,
        status: ReservationStatus | None = None,
        amenity_id: int | None = None,
        limit: int | None = None,
    ) -> list[AdminReservation]:
        _require_admin(caller)
        flt = ReservationFilter(
            status=status,
            amenity_id=amenity_id,
            order_by="-created_at",
            limit=clamp_limit(limit),
            include="all",
        )
        with self.store.session() as repo:
            reservations = repo.list_reservations(flt)
        logger.info("Admin reservation listing", extra={"caller": caller.id, "count": len(reservations)})
        return reservations

    def list_amenity_detail_reservations(
        self,
        caller: Identity,
        amenity_id: int,
        status: str | None = None,
        limit: int | None = None,
        now: datetime | None = None,
    ) -> AmenityReservationList:
        """Admin view of one amenity's reservations, latest start first.

        ``status`` may also be ``active`` (confirmed, not yet ended) or
        ``completed`` (confirmed, already ended); unknown values are ignored.
        ``total_count`` counts every match regardless of ``limit``.
        """
        _require_admin(caller)
        retrieved_at = now or datetime.now(UTC)
        flt = amenity_detail_filter(amenity_id, status, retrieved_at)
        flt.limit = clamp_limit(limit)
        with self.store.session() as repo:
            amenity = repo.find_amenity(amenity_id)
            if amenity is None:
                raise NotFoundError(RejectionKind.AMENITY_NOT_FOUND, "Amenity not found")
            reservations = repo.list_reservations(flt)
            total_count = repo.count_reservations(flt)
        logger.info(
            "Admin amenity reservation listing",
            extra={"caller": caller.id, "amenity_id": amenity_id, "count": len(reservations)},
        )
        return AmenityReservationList(
            amenity_id=amenity.id,
            amenity_name=amenity.name,
            reservations=reservations,
            total_count=total_count,
            filters={"status": status, "limit": flt.limit},
            retrieved_at=retrieved_at,
        )

    def purge_reservations(
        self, caller: Identity, before: datetime, status: ReservationStatus | None = None
    ) -> int:
        _require_admin(caller)
        cutoff = parse_timestamp(before)
        with self.store.session() as repo:
            deleted = repo.delete_reservations(cutoff, status)
        logger.info(
            "Purged reservations",
            extra={"caller": caller.id, "before": cutoff.isoformat(), "deleted": deleted},
        )
        return deleted

    @staticmethod
    def _owned(reservation: Reservation | None, caller: Identity) -> Reservation:
        if reservation is None:
            raise NotFoundError(RejectionKind.RESERVATION_NOT_FOUND, "Reservation not found")
        if reservation.user_id != caller.id:
            raise AuthorizationError(RejectionKind.NOT_OWNER, "Not allowed")
        return reservation


def amenity_view_filter(
    amenity_id: int, start_date: date | None = None, end_date: date | None = None
) -> ReservationFilter:
    """Confirmed reservations of an amenity, optionally within whole UTC days."""
    flt = ReservationFilter(amenity_id=amenity_id, status=ReservationStatus.CONFIRMED, include="user")
    if start_date is not None and end_date is not None:
        # anything overlapping [start_date 00:00, end_date + 1 00:00)
        flt.start_before = _day_after(end_date)
        flt.end_from = _day_start(start_date)
    elif start_date is not None:
        flt.start_from = _day_start(start_date)
    elif end_date is not None:
        flt.end_before = _day_after(end_date)
    return flt


def amenity_detail_filter(amenity_id: int, status: str | None, now: datetime) -> ReservationFilter:
    flt = ReservationFilter(amenity_id=amenity_id, order_by="-start_time", include="all")
    if status == "active":
        flt.status = ReservationStatus.CONFIRMED
        flt.end_from = now
    elif status == "completed":
        flt.status = ReservationStatus.CONFIRMED
        flt.end_before = now
    elif status in _STATUS_VALUES:
        flt.status = ReservationStatus(status)
    return flt


def clamp_limit(limit: int | None) -> int:
    if limit is None or limit < 1:
        return config.ADMIN_RESERVATIONS_DEFAULT_LIMIT
    return min(limit, config.ADMIN_RESERVATIONS_MAX_LIMIT)


def _require_admin(caller: Identity) -> None:
    if not caller.is_admin:
        raise AuthorizationError(RejectionKind.ADMIN_REQUIRED, "Admin access required")

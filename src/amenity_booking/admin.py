from __future__ import annotations

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Query

from amenity_booking.admission import ReservationAdmission, clamp_limit
from amenity_booking.auth import admin_identity
from amenity_booking.dependencies import get_admission
from amenity_booking.models import (
    AdminReservationList,
    AmenityReservationList,
    Identity,
    PurgeResult,
    ReservationStatus,
)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/reservations", response_model=AdminReservationList)
def list_reservations(
    status: ReservationStatus | None = None,
    amenity_id: int | None = Query(default=None, alias="amenityId"),
    limit: int | None = None,
    identity: Identity = Depends(admin_identity),
    admission: ReservationAdmission = Depends(get_admission),
) -> AdminReservationList:
    reservations = admission.list_all_reservations(identity, status, amenity_id, limit)
    return AdminReservationList(
        reservations=reservations,
        total_count=len(reservations),
        filters={
            "status": status.value if status is not None else None,
            "amenityId": amenity_id,
            "limit": clamp_limit(limit),
        },
        retrieved_at=datetime.now(UTC),
    )


@router.delete("/reservations", response_model=PurgeResult)
def purge_reservations(
    before: datetime,
    status: ReservationStatus | None = None,
    identity: Identity = Depends(admin_identity),
    admission: ReservationAdmission = Depends(get_admission),
) -> PurgeResult:
    deleted = admission.purge_reservations(identity, before, status)
    return PurgeResult(deleted=deleted)


@router.get("/amenities/{amenity_id}/reservations", response_model=AmenityReservationList)
def list_amenity_reservations(
    amenity_id: int,
    status: str | None = None,
    limit: int | None = None,
    identity: Identity = Depends(admin_identity),
    admission: ReservationAdmission = Depends(get_admission),
) -> AmenityReservationList:
    return admission.list_amenity_detail_reservations(identity, amenity_id, status, limit)

from __future__ import annotations

from datetime import date

from aws_lambda_powertools import Logger, Tracer
from aws_lambda_powertools.metrics import Metrics, MetricUnit
from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from amenity_booking.admin import router as admin_router
from amenity_booking.admission import ReservationAdmission
from amenity_booking.auth import current_identity
from amenity_booking.dependencies import get_admission
from amenity_booking.errors import RejectionKind, ReservationError, StoreFailure
from amenity_booking.models import (
    Amenity,
    Identity,
    Reservation,
    ReservationCreate,
    ReservationWithAmenity,
    ReservationWithUser,
)

logger = Logger()
tracer = Tracer()
metrics = Metrics(namespace="AmenityBooking")

app = FastAPI(title="Amenity Booking API", version="0.1.0")
app.include_router(admin_router)


@app.exception_handler(ReservationError)
def handle_reservation_error(request: Request, exc: ReservationError) -> JSONResponse:
    if isinstance(exc, StoreFailure):
        logger.error("Store failure", extra={"path": request.url.path})
    else:
        logger.info("Request rejected", extra={"path": request.url.path, "kind": exc.kind.value})
        metrics.add_metric(name="ReservationRejected", value=1, unit=MetricUnit.Count)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    logger.info("Malformed request", extra={"path": request.url.path, "errors": len(errors)})
    return JSONResponse(
        status_code=400,
        content={"kind": RejectionKind.INVALID_REQUEST.value, "message": message},
    )


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@tracer.capture_method
@app.get("/amenities", response_model=list[Amenity])
def list_amenities(
    identity: Identity = Depends(current_identity),
    admission: ReservationAdmission = Depends(get_admission),
) -> list[Amenity]:
    return admission.list_amenities(identity)


@tracer.capture_method
@app.post("/reservations", response_model=Reservation)
def create_reservation(
    payload: ReservationCreate,
    identity: Identity = Depends(current_identity),
    admission: ReservationAdmission = Depends(get_admission),
) -> Reservation:
    reservation = admission.propose(identity, payload.amenity_id, payload.start_time, payload.end_time)
    metrics.add_metric(name="ReservationCreated", value=1, unit=MetricUnit.Count)
    return reservation


@tracer.capture_method
@app.get("/reservations", response_model=list[ReservationWithAmenity])
def list_own_reservations(
    identity: Identity = Depends(current_identity),
    admission: ReservationAdmission = Depends(get_admission),
) -> list[ReservationWithAmenity]:
    return admission.list_user_reservations(identity)


@tracer.capture_method
@app.patch("/reservations/{reservation_id}/cancel", response_model=Reservation)
def cancel_reservation(
    reservation_id: int,
    identity: Identity = Depends(current_identity),
    admission: ReservationAdmission = Depends(get_admission),
) -> Reservation:
    reservation = admission.cancel(identity, reservation_id)
    metrics.add_metric(name="ReservationCancelled", value=1, unit=MetricUnit.Count)
    return reservation


@tracer.capture_method
@app.patch("/reservations/{reservation_id}/hide", response_model=Reservation)
def hide_reservation(
    reservation_id: int,
    identity: Identity = Depends(current_identity),
    admission: ReservationAdmission = Depends(get_admission),
) -> Reservation:
    reservation = admission.hide(identity, reservation_id)
    metrics.add_metric(name="ReservationHidden", value=1, unit=MetricUnit.Count)
    return reservation


@tracer.capture_method
@app.get("/reservations/amenity/{amenity_id}", response_model=list[ReservationWithUser])
def list_amenity_reservations(
    amenity_id: int,
    start_date: date | None = Query(default=None, alias="startDate"),
    end_date: date | None = Query(default=None, alias="endDate"),
    identity: Identity = Depends(current_identity),
    admission: ReservationAdmission = Depends(get_admission),
) -> list[ReservationWithUser]:
    return admission.list_amenity_reservations(identity, amenity_id, start_date, end_date)


from __future__ import annotations

from enum import Enum


class RejectionKind(str, Enum):
    MISSING_PARAMETERS = "MissingParameters"
    INVALID_DATE_FORMAT = "InvalidDateFormat"
    INVALID_TIME_RANGE = "InvalidTimeRange"
    DURATION_EXCEEDED = "DurationExceeded"
    INVALID_REQUEST = "InvalidRequest"
    AMENITY_NOT_FOUND = "AmenityNotFound"
    RESERVATION_NOT_FOUND = "ReservationNotFound"
    USER_TIME_CONFLICT = "UserTimeConflict"
    DUPLICATE_AMENITY_PER_DAY = "DuplicateAmenityPerDay"
    CAPACITY_FULL = "CapacityFull"
    NOT_OWNER = "NotOwner"
    ADMIN_REQUIRED = "AdminRequired"
    STORE_FAILURE = "StoreFailure"


class ReservationError(Exception):
    """Base for every named outcome the admission engine reports to its caller."""

    status_code = 400

    def __init__(self, kind: RejectionKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind.value, "message": self.message}


class ValidationError(ReservationError):
    status_code = 400


class NotFoundError(ReservationError):
    status_code = 404


class ConflictError(ReservationError):
    # Business-rule rejections share the validation status code
    status_code = 400


class AuthorizationError(ReservationError):
    status_code = 403


class StoreFailure(ReservationError):
    status_code = 500

    def __init__(self, message: str = "Internal server error") -> None:
        super().__init__(RejectionKind.STORE_FAILURE, message)

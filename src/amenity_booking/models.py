from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Role(str, Enum):
    TENANT = "tenant"
    OWNER = "owner"
    ADMIN = "admin"


class ReservationStatus(str, Enum):
    PENDING = "pending"  # allowed by the schema, never produced
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class ApiModel(BaseModel):
    # camelCase on the wire, snake_case accepted on input
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Identity(ApiModel):
    id: int
    role: Role = Role.TENANT

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


class ReservationCreate(ApiModel):
    # Presence and timestamp format are checked by the admission engine so that
    # the first failing rule decides the reported reason.
    amenity_id: int | None = None
    start_time: datetime | str | None = None
    end_time: datetime | str | None = None


class Amenity(ApiModel):
    id: int
    name: str
    capacity: int = Field(..., ge=1)
    max_duration: int = Field(..., ge=1)  # minutes


class UserSummary(ApiModel):
    id: int
    name: str


class UserDetail(UserSummary):
    email: str
    role: Role


class Reservation(ApiModel):
    id: int
    user_id: int
    amenity_id: int
    start_time: datetime
    end_time: datetime
    status: ReservationStatus = ReservationStatus.CONFIRMED
    hidden_from_user: bool = False
    created_at: datetime


class ReservationWithAmenity(Reservation):
    amenity: Amenity


class ReservationWithUser(Reservation):
    user: UserSummary


class AdminReservation(Reservation):
    user: UserDetail
    amenity: Amenity


class ReservationFilter(BaseModel):
    """Query shape understood by the store's ``list_reservations``."""

    user_id: int | None = None
    amenity_id: int | None = None
    status: ReservationStatus | None = None
    hidden_from_user: bool | None = None
    # bounds are inclusive for ``*_from`` and exclusive for ``*_before``
    start_from: datetime | None = None
    start_before: datetime | None = None
    end_from: datetime | None = None
    end_before: datetime | None = None
    order_by: Literal["start_time", "-start_time", "-created_at"] = "start_time"
    limit: int | None = None
    include: Literal["amenity", "user", "all"] | None = None


class AdminReservationList(ApiModel):
    reservations: list[AdminReservation]
    total_count: int
    filters: dict[str, str | int | None]
    retrieved_at: datetime


class PurgeResult(ApiModel):
    deleted: int


class AmenityReservationList(ApiModel):
    amenity_id: int
    amenity_name: str
    reservations: list[AdminReservation]
    total_count: int
    filters: dict[str, str | int | None]
    retrieved_at: datetime

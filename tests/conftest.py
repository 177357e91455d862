from __future__ import annotations

import itertools
from collections.abc import Callable, Iterator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

from amenity_booking import database, orm
from amenity_booking.admission import ReservationAdmission
from amenity_booking.api import app
from amenity_booking.dal import ReservationStore
from amenity_booking.dependencies import get_admission
from amenity_booking.models import Identity, Role


@pytest.fixture()
def session_factory() -> sessionmaker[Session]:
    engine = database.make_engine("sqlite://")
    database.create_schema(engine)
    return database.make_session_factory(engine)


@pytest.fixture()
def store(session_factory: sessionmaker[Session]) -> ReservationStore:
    return ReservationStore(session_factory)


@pytest.fixture()
def admission(store: ReservationStore) -> ReservationAdmission:
    return ReservationAdmission(store)


@pytest.fixture()
def make_user(session_factory: sessionmaker[Session]) -> Callable[..., Identity]:
    counter = itertools.count(1)

    def _make(name: str | None = None, role: Role = Role.TENANT) -> Identity:
        n = next(counter)
        with session_factory() as session:
            user = orm.User(name=name or f"Resident {n}", email=f"resident{n}@example.com", role=role.value)
            session.add(user)
            session.commit()
            return Identity(id=user.id, role=role)

    return _make


@pytest.fixture()
def make_amenity(session_factory: sessionmaker[Session]) -> Callable[..., int]:
    def _make(name: str, capacity: int = 1, max_duration: int = 120) -> int:
        with session_factory() as session:
            amenity = orm.Amenity(name=name, capacity=capacity, max_duration=max_duration)
            session.add(amenity)
            session.commit()
            return amenity.id

    return _make


@pytest.fixture()
def client(admission: ReservationAdmission) -> Iterator[TestClient]:
    app.dependency_overrides[get_admission] = lambda: admission
    yield TestClient(app)
    app.dependency_overrides.clear()

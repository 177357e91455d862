from __future__ import annotations

from functools import lru_cache

from . import database
from .admission import ReservationAdmission
from .dal import ReservationStore


@lru_cache(maxsize=1)
def get_admission() -> ReservationAdmission:
    """Process-wide engine over ``DATABASE_URL``; tests override this dependency."""
    engine = database.make_engine()
    database.create_schema(engine)
    return ReservationAdmission(ReservationStore(database.make_session_factory(engine)))

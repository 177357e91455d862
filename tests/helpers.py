from __future__ import annotations

from datetime import UTC, datetime, timedelta

from jose import jwt

from amenity_booking import config
from amenity_booking.models import Identity

# a Monday, far enough ahead that nothing is in the past
DAY = datetime(2030, 1, 7, tzinfo=UTC)


def at(hour: int, minute: int = 0, days: int = 0) -> datetime:
    return DAY + timedelta(days=days, hours=hour, minutes=minute)


def token_for(identity: Identity) -> str:
    return jwt.encode(
        {"id": identity.id, "role": identity.role.value},
        config.JWT_SECRET,
        algorithm=config.JWT_ALGORITHM,
    )


def auth_header(identity: Identity) -> dict[str, str]:
    return {"Authorization": f"Bearer {token_for(identity)}"}

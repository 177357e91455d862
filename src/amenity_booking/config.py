from __future__ import annotations

import os

DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///./amenity_booking.db")

JWT_SECRET = os.environ.get("JWT_SECRET", "dev-secret")
JWT_ALGORITHM = os.environ.get("JWT_ALGORITHM", "HS256")

# Upper bound, in seconds, for one unit of work against the store
STORE_TIMEOUT_SECONDS = float(os.environ.get("STORE_TIMEOUT_SECONDS", "5"))

ADMIN_RESERVATIONS_DEFAULT_LIMIT = int(os.environ.get("ADMIN_RESERVATIONS_DEFAULT_LIMIT", "50"))
ADMIN_RESERVATIONS_MAX_LIMIT = int(os.environ.get("ADMIN_RESERVATIONS_MAX_LIMIT", "200"))

from __future__ import annotations

from typing import Any

from aws_lambda_powertools import Logger
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import ValidationError as PydanticValidationError

from . import config
from .models import Identity

logger = Logger()

_bearer = HTTPBearer(auto_error=False)


def decode_identity(token: str) -> Identity:
    """Turn a signed bearer token into the caller's typed identity.

    Raises ``HTTPException(401)`` when the token is invalid, expired, or does
    not carry an ``id``.
    """
    try:
        payload: dict[str, Any] = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except JWTError as exc:
        logger.warning("JWT verification failed", extra={"error": str(exc)})
        raise HTTPException(status_code=401, detail="Invalid or expired token") from exc

    try:
        return Identity.model_validate({"id": payload.get("id"), "role": payload.get("role", "tenant")})
    except PydanticValidationError as exc:
        logger.warning("JWT payload rejected", extra={"error": str(exc)})
        raise HTTPException(status_code=401, detail="Invalid or expired token") from exc


def current_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
) -> Identity:
    # missing header, non-Bearer scheme or empty token all arrive as None
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return decode_identity(credentials.credentials)


def admin_identity(identity: Identity = Depends(current_identity)) -> Identity:
    if not identity.is_admin:
        logger.warning("Unauthorized admin access", extra={"user_id": identity.id})
        raise HTTPException(status_code=403, detail="Admin access required")
    return identity

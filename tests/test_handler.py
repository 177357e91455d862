from __future__ import annotations

import json
from collections.abc import Callable
from http import HTTPStatus
from typing import Any

from fastapi.testclient import TestClient

from amenity_booking.api_handler import lambda_handler
from amenity_booking.models import Identity
from helpers import token_for


def _http_v2_event(path: str, method: str = "GET", headers: dict[str, str] | None = None) -> dict[str, Any]:
    return {
        "version": "2.0",
        "rawPath": path,
        "routeKey": f"{method} {path}",
        "rawQueryString": "",
        "headers": {"host": "example.com", **(headers or {})},
        "requestContext": {"http": {"method": method, "path": path, "protocol": "HTTP/1.1"}},
        "isBase64Encoded": False,
    }


def test_lambda_handler_health_ok() -> None:
    event = _http_v2_event("/health", "GET")
    resp = lambda_handler(event, context={})  # type: ignore[arg-type]
    assert isinstance(resp, dict)
    assert resp.get("statusCode") == HTTPStatus.OK
    assert "ok" in resp.get("body", "")


def test_lambda_handler_requires_token() -> None:
    resp = lambda_handler(_http_v2_event("/reservations"), context={})  # type: ignore[arg-type]
    assert resp.get("statusCode") == HTTPStatus.UNAUTHORIZED


def test_lambda_handler_lists_amenities(
    client: TestClient, make_user: Callable[..., Identity], make_amenity: Callable[..., int]
) -> None:
    # the client fixture installs the in-memory engine on the shared app
    make_amenity("Gym", capacity=4, max_duration=60)
    user = make_user()
    event = _http_v2_event("/amenities", headers={"authorization": f"Bearer {token_for(user)}"})

    resp = lambda_handler(event, context={})  # type: ignore[arg-type]
    assert resp.get("statusCode") == HTTPStatus.OK
    assert [a["name"] for a in json.loads(resp["body"])] == ["Gym"]

from __future__ import annotations

from typing import Any

from aws_lambda_powertools import Logger
from mangum import Mangum
from mangum.types import LambdaContext

from amenity_booking.api import app

logger = Logger()
handler = Mangum(app)


def lambda_handler(event: dict[str, Any], context: LambdaContext) -> Any:
    # Fill the request context fields Mangum expects on trimmed-down HTTP API v2.0 events
    if isinstance(event, dict) and event.get("version") == "2.0":
        request_context = event.setdefault("requestContext", {})
        http_ctx = request_context.setdefault("http", {})
        http_ctx.setdefault("sourceIp", "127.0.0.1")
        http_ctx.setdefault("userAgent", "unknown")
        request_context.setdefault("stage", "$default")

    logger.debug("Dispatching event", extra={"route_key": event.get("routeKey")})
    return handler(event, context)

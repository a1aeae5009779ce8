from __future__ import annotations

import base64
import hashlib
import json

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ..routes_metrics import idempotency_hits_total, idempotency_replays_total

IDEMPOTENCY_TTL_SECS = 86400


class IdempotencyMiddleware(BaseHTTPMiddleware):
    """Cache responses for order POSTs with an ``Idempotency-Key`` header.

    Keys are stored in Redis for a day so that a double-submitted checkout or
    a retried modification from a flaky network replays the first response
    instead of running the workflow twice. Server errors are not cached so
    the client can retry them.
    """

    async def dispatch(self, request: Request, call_next):
        key = request.headers.get("Idempotency-Key")
        if (
            request.method != "POST"
            or not request.url.path.startswith("/api/orders")
            or not key
        ):
            return await call_next(request)

        idempotency_hits_total.inc()
        redis = request.app.state.redis
        key_hash = hashlib.sha256(key.encode()).hexdigest()
        cache_key = f"idem:{request.url.path}:{key_hash}"
        cached = await redis.get(cache_key)
        if cached:
            idempotency_replays_total.inc()
            data = json.loads(cached)
            return Response(
                content=base64.b64decode(data["body"]),
                status_code=data["status"],
                headers=data.get("headers"),
                media_type=data.get("media_type", "application/json"),
            )

        response = await call_next(request)
        body = b"".join([section async for section in response.body_iterator])
        headers = {
            k: v for k, v in response.headers.items() if k.lower() != "content-length"
        }
        if response.status_code < 500:
            payload = {
                "status": response.status_code,
                "body": base64.b64encode(body).decode(),
                "headers": headers,
                "media_type": response.media_type,
            }
            await redis.set(cache_key, json.dumps(payload), ex=IDEMPOTENCY_TTL_SECS)
        return Response(
            content=body,
            status_code=response.status_code,
            headers=headers,
            media_type=response.media_type,
        )

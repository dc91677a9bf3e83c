"""
Per-request log context.

Every event logged while a request is in flight carries its request id,
method and path, plus the idempotency token when the client sent one. The id
is taken from ``X-Request-ID`` if present and echoed back together with the
handling time.
"""

import time
import uuid

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from chaosplane.middleware.idempotency import TOKEN_HEADER

REQUEST_ID_HEADER = "X-Request-ID"
RESPONSE_TIME_HEADER = "X-Response-Time"


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id

        context = {"request_id": request_id, "method": request.method, "path": request.url.path}
        token = request.headers.get(TOKEN_HEADER)
        if token:
            context["idempotency_token"] = token
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(**context)

        started = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.clear_contextvars()

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers[RESPONSE_TIME_HEADER] = f"{(time.perf_counter() - started) * 1000:.2f}ms"
        return response

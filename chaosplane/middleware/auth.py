"""
Bearer Token Middleware.

With a configured token every request (except the liveness probe) must carry
``Authorization: Bearer <token>``. An empty token disables the check.
"""

import hmac

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = structlog.get_logger(__name__)

EXEMPT_PATHS = frozenset({"/health"})
BEARER_PREFIX = "Bearer "


class BearerAuthMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, token: str = ""):
        super().__init__(app)
        self.token = token

    async def dispatch(self, request: Request, call_next) -> Response:
        if not self.token or request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        header = request.headers.get("Authorization", "")
        presented = header[len(BEARER_PREFIX):] if header.startswith(BEARER_PREFIX) else ""
        if not presented or not hmac.compare_digest(presented.encode(), self.token.encode()):
            logger.warning("auth_rejected", path=request.url.path, has_header=bool(header))
            return JSONResponse(status_code=401, content={"error": "unauthorized"})
        return await call_next(request)

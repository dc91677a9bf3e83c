"""
Idempotency Middleware.

Every non-GET request must carry ``X-Idempotency-Token``. A token seen again
before it expires is rejected with 409; an expired token is evicted when it
is next presented and the request proceeds. Once ``sweep_threshold`` tokens
are held, every expired token is dropped before a new one is stored.
Tokens live in process memory only.
"""

import time
from typing import Callable

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = structlog.get_logger(__name__)

TOKEN_HEADER = "X-Idempotency-Token"
DEFAULT_TTL_SECONDS = 600.0
DEFAULT_SWEEP_THRESHOLD = 1024
SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


class IdempotencyMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
        sweep_threshold: int = DEFAULT_SWEEP_THRESHOLD,
    ):
        super().__init__(app)
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self.sweep_threshold = sweep_threshold
        self._seen: dict[str, float] = {}

    def admit(self, token: str) -> bool:
        """Record ``token``; False when it is still live from an earlier request."""
        now = self.clock()
        expires_at = self._seen.get(token)
        if expires_at is not None:
            if now < expires_at:
                return False
            del self._seen[token]
        if len(self._seen) >= self.sweep_threshold:
            self._sweep(now)
        self._seen[token] = now + self.ttl_seconds
        return True

    def _sweep(self, now: float) -> None:
        expired = [token for token, expires_at in self._seen.items() if expires_at <= now]
        for token in expired:
            del self._seen[token]
        if expired:
            logger.debug("idempotency_tokens_evicted", count=len(expired), remaining=len(self._seen))

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.method in SAFE_METHODS:
            return await call_next(request)

        token = request.headers.get(TOKEN_HEADER, "")
        if not token:
            return JSONResponse(status_code=400, content={"error": f"missing {TOKEN_HEADER} header"})
        if not self.admit(token):
            logger.info("idempotency_duplicate", path=request.url.path)
            return JSONResponse(status_code=409, content={"error": "duplicate request"})
        return await call_next(request)

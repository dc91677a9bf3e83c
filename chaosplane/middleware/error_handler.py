"""
Last-resort error middleware.

Anything that escapes the routers and the registered exception handlers is
answered with the failure envelope, so REST and RPC clients can still branch
on ``success``. Backend text stays in the log, keyed by ``error_id``.
"""

import traceback
import uuid

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = structlog.get_logger(__name__)

INTERNAL_ERROR_CODE = 500


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, debug: bool = False):
        super().__init__(app)
        self.debug = debug

    async def dispatch(self, request: Request, call_next) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            error_id = uuid.uuid4().hex
            logger.error(
                "request_crashed",
                error_id=error_id,
                method=request.method,
                path=request.url.path,
                exc_type=type(exc).__name__,
                error=str(exc),
                traceback=traceback.format_exc(),
            )
            err = f"internal error, see server log for {error_id}"
            if self.debug:
                err = f"{err} ({type(exc).__name__}: {exc})"
            return JSONResponse(
                status_code=INTERNAL_ERROR_CODE,
                content={
                    "success": False,
                    "code": INTERNAL_ERROR_CODE,
                    "err": err,
                    "result": None,
                    "error_id": error_id,
                },
            )

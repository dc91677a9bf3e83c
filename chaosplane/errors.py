"""
Domain errors and the universal response envelope.

Every operation answers with a ``Response``:
- success: bool
- code: 200 on success, a domain code otherwise
- err: human-readable failure text (empty on success)
- result: polymorphic payload

Domain failures raised by services are ``ChaosError`` instances. The HTTP and
RPC surfaces translate them into the same envelope, so clients branch on
``success`` rather than on transport status.
"""

from enum import Enum
from typing import Any, Optional

import structlog
from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

logger = structlog.get_logger(__name__)

OK_CODE = 200


# ============================================================================
# ERROR KINDS
# ============================================================================


class ErrorKind(Enum):
    """Domain error kinds with their numeric codes and message templates."""

    PARAMETER_LESS = (45000, "less parameter: `{}`")
    PARAMETER_ILLEGAL = (46000, "illegal parameter: {}")
    HANDLER_EXEC_NOT_FOUND = (47000, "executor not found: {}")
    DATA_NOT_FOUND = (50000, "data not found: `{}`")
    DATABASE_ERROR = (56000, "database error: {}")
    GENERATE_UID_FAILED = (60000, "generate uid failed: {}")
    OS_CMD_EXEC_FAILED = (63020, "exec os command failed: {}")

    def __init__(self, code: int, template: str):
        self.code = code
        self.template = template

    @property
    def http_status(self) -> int:
        return 500 if self is ErrorKind.DATABASE_ERROR else 400

    def format(self, *details: Any) -> str:
        return self.template.format(" ".join(str(d) for d in details))


# ============================================================================
# RESPONSE ENVELOPE
# ============================================================================


class Response(BaseModel):
    """Executor / service response envelope."""

    success: bool
    code: int = OK_CODE
    err: str = ""
    result: Optional[Any] = None

    @classmethod
    def ok(cls, result: Any = None) -> "Response":
        return cls(success=True, code=OK_CODE, result=result)

    @classmethod
    def fail(cls, kind: ErrorKind, *details: Any) -> "Response":
        return cls(success=False, code=kind.code, err=kind.format(*details))


# ============================================================================
# EXCEPTIONS
# ============================================================================


class ChaosError(Exception):
    """Base exception for domain failures."""

    def __init__(self, kind: ErrorKind, *details: Any):
        self.kind = kind
        self.details = details
        self.message = kind.format(*details)
        super().__init__(self.message)

    @property
    def code(self) -> int:
        return self.kind.code

    @property
    def status_code(self) -> int:
        return self.kind.http_status

    def to_response(self) -> Response:
        return Response(success=False, code=self.code, err=self.message)


class MigrationError(Exception):
    """Schema migration failed. Fatal: the service refuses to start."""


# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================


async def chaos_exception_handler(request: Request, exc: ChaosError) -> JSONResponse:
    """Translate a domain error into its HTTP status and the response envelope."""
    logger.warning(
        "domain_error",
        code=exc.code,
        message=exc.message,
        status_code=exc.status_code,
        request_id=getattr(request.state, "request_id", None),
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_response().model_dump())


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Body/param bind failures are client errors (400), not 422."""
    return JSONResponse(
        status_code=400,
        content={"error": "invalid request", "details": jsonable_errors(exc)},
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle generic exceptions without leaking internals."""
    logger.exception(
        "unhandled_exception",
        error=str(exc),
        request_id=getattr(request.state, "request_id", None),
    )
    return JSONResponse(
        status_code=500,
        content={"error": "An internal error occurred", "status": 500},
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [
        {"loc": [str(part) for part in error.get("loc", ())], "msg": error.get("msg", "")}
        for error in exc.errors()
    ]


def register_exception_handlers(app) -> None:
    """Register exception handlers with FastAPI app."""
    app.add_exception_handler(ChaosError, chaos_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

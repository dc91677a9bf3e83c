"""
RPC surface: JSON-RPC 2.0 over HTTP POST /rpc.

Methods mirror the experiment endpoints:

    ExperimentService.Create   params: CreateExperimentRequest  -> {uid, success, code, error}
    ExperimentService.Destroy  params: DestroyExperimentRequest -> {uid, success, code, error}
    ExperimentService.Query    params: {"uid": ...}            -> experiment record

Domain failures are JSON-RPC errors whose ``code`` is the domain code.
"""

from typing import Any, Awaitable, Callable, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from chaosplane.config import Settings
from chaosplane.errors import ChaosError, Response
from chaosplane.middleware.audit import AuditMiddleware
from chaosplane.middleware.auth import BearerAuthMiddleware
from chaosplane.middleware.error_handler import ErrorHandlerMiddleware
from chaosplane.middleware.request_context import RequestContextMiddleware
from chaosplane.schemas.experiment import CreateExperimentRequest, DestroyExperimentRequest
from chaosplane.schemas.records import to_payload
from chaosplane.services.experiment import ExperimentService
from chaosplane.services.registry import ServiceRegistry

logger = structlog.get_logger(__name__)

JSONRPC_VERSION = "2.0"
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602


class QueryParams(BaseModel):
    uid: str = ""


def rpc_result(request_id: Any, result: Any) -> dict:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}


def rpc_error(request_id: Any, code: int, message: str, data: Any = None) -> dict:
    error: dict = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "error": error}


def reply(uid: str, response: Response) -> dict:
    return {"uid": uid, "success": response.success, "code": response.code, "error": response.err}


class ExperimentRpc:
    """Method table for the experiment service."""

    def __init__(self, service: ExperimentService):
        self.service = service
        self.methods: dict[str, Callable[[dict], Awaitable[Any]]] = {
            "ExperimentService.Create": self.create,
            "ExperimentService.Destroy": self.destroy,
            "ExperimentService.Query": self.query,
        }

    async def create(self, params: dict) -> dict:
        body = CreateExperimentRequest.model_validate(params)
        response, record = await self.service.create(body.to_service())
        return reply(record.uid, response)

    async def destroy(self, params: dict) -> dict:
        body = DestroyExperimentRequest.model_validate(params)
        response = await self.service.destroy(body.to_service(body.uid))
        return reply(body.uid, response)

    async def query(self, params: dict) -> dict:
        body = QueryParams.model_validate(params)
        return to_payload(await self.service.query(body.uid))

    async def handle(self, message: Any) -> dict:
        request_id = message.get("id") if isinstance(message, dict) else None
        if (
            not isinstance(message, dict)
            or message.get("jsonrpc") != JSONRPC_VERSION
            or not isinstance(message.get("method"), str)
        ):
            return rpc_error(request_id, INVALID_REQUEST, "invalid request")

        method = self.methods.get(message["method"])
        if method is None:
            return rpc_error(request_id, METHOD_NOT_FOUND, f"method not found: {message['method']}")

        params = message.get("params") or {}
        if not isinstance(params, dict):
            return rpc_error(request_id, INVALID_PARAMS, "params must be an object")

        try:
            return rpc_result(request_id, await method(params))
        except ValidationError as exc:
            return rpc_error(
                request_id,
                INVALID_PARAMS,
                "invalid params",
                [{"loc": [str(p) for p in e["loc"]], "msg": e["msg"]} for e in exc.errors()],
            )
        except ChaosError as exc:
            logger.info("rpc_domain_error", method=message["method"], code=exc.code, message=exc.message)
            return rpc_error(request_id, exc.code, exc.message)


def create_rpc_app(services: ServiceRegistry, settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or services.settings
    rpc = ExperimentRpc(services.experiments)

    app = FastAPI(title=f"{settings.app_name} RPC", version=settings.app_version, docs_url=None, redoc_url=None)
    app.state.services = services

    app.add_middleware(BearerAuthMiddleware, token=settings.auth_token)
    app.add_middleware(AuditMiddleware)
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(ErrorHandlerMiddleware, debug=settings.debug)

    @app.post("/rpc")
    async def rpc_endpoint(request: Request):
        try:
            message = await request.json()
        except ValueError:
            return JSONResponse(rpc_error(None, PARSE_ERROR, "parse error"))
        return JSONResponse(await rpc.handle(message))

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app

"""
Chaosplane: FastAPI application.

Run: chaosplane --http :9000 --grpc :9001
 or: uvicorn --factory chaosplane.main:create_app --port 9000

REST surface (under /api/v1):
  - POST   /experiments            create an experiment
  - DELETE /experiments/{uid}      destroy it
  - GET    /experiments/{uid}      fetch its record
  - POST   /preparations           attach a runtime agent
  - DELETE /preparations/{uid}     detach it
  - GET    /status                 query records
  - GET    /openapi                OpenAPI document (YAML)
  - GET    /health                 liveness probe
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI

from chaosplane.api.routers.experiments import router as experiments_router
from chaosplane.api.routers.openapi import router as openapi_router
from chaosplane.api.routers.preparations import router as preparations_router
from chaosplane.api.routers.status import router as status_router
from chaosplane.config import Settings
from chaosplane.config import settings as default_settings
from chaosplane.errors import register_exception_handlers
from chaosplane.middleware.audit import AuditMiddleware
from chaosplane.middleware.auth import BearerAuthMiddleware
from chaosplane.middleware.error_handler import ErrorHandlerMiddleware
from chaosplane.middleware.idempotency import IdempotencyMiddleware
from chaosplane.middleware.request_context import RequestContextMiddleware
from chaosplane.services.registry import ServiceRegistry

logger = structlog.get_logger(__name__)


def create_app(
    services: Optional[ServiceRegistry] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """Create and configure the REST application.

    When ``services`` is omitted the app builds its own registry and owns its
    lifecycle; otherwise the caller starts and stops it.
    """
    settings = settings or (services.settings if services else default_settings)
    owns_services = services is None
    services = services or ServiceRegistry(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("chaosplane_starting", version=settings.app_version)
        await services.start()
        yield
        if owns_services:
            await services.stop()
        logger.info("chaosplane_shutdown")

    app = FastAPI(
        title=settings.app_name,
        description="Chaos-engineering control plane: experiments, preparations and their lifecycle.",
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url=None,
        openapi_tags=[
            {"name": "health", "description": "Liveness probe"},
            {"name": "experiments", "description": "Create, destroy and fetch experiments"},
            {"name": "preparations", "description": "Attach and detach runtime agents"},
            {"name": "status", "description": "Query experiment and preparation records"},
        ],
    )
    app.state.services = services
    app.state.settings = settings

    register_exception_handlers(app)

    # ── Middleware (last added = outermost) ──────────────────────────────
    app.add_middleware(IdempotencyMiddleware, ttl_seconds=settings.idempotency_ttl_seconds)
    app.add_middleware(BearerAuthMiddleware, token=settings.auth_token)
    app.add_middleware(AuditMiddleware)
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(ErrorHandlerMiddleware, debug=settings.debug)

    # ── Routes ───────────────────────────────────────────────────────────
    app.include_router(experiments_router, prefix=settings.api_prefix)
    app.include_router(preparations_router, prefix=settings.api_prefix)
    app.include_router(status_router, prefix=settings.api_prefix)
    app.include_router(openapi_router, prefix=settings.api_prefix)

    @app.get("/health", tags=["health"])
    async def health():
        """Liveness probe."""
        return {"status": "ok", "version": settings.app_version}

    return app

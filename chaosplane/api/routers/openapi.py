"""Serves the hand-written OpenAPI document."""

from fastapi import APIRouter
from fastapi.responses import FileResponse

from chaosplane.config import BUNDLED_OPENAPI

router = APIRouter(tags=["meta"])


@router.get("/openapi", include_in_schema=False)
async def openapi_document():
    return FileResponse(BUNDLED_OPENAPI, media_type="application/yaml")

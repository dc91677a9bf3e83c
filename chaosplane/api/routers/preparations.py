"""Preparation endpoints."""

from typing import Optional

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse

from chaosplane.api.deps import get_preparation_service
from chaosplane.schemas.preparation import PrepareRequest, RevokeRequest
from chaosplane.schemas.records import envelope, to_payload
from chaosplane.services.preparation import PreparationService

router = APIRouter(prefix="/preparations", tags=["preparations"])


@router.post("", status_code=201)
async def prepare(
    body: PrepareRequest,
    service: PreparationService = Depends(get_preparation_service),
):
    response, record = await service.prepare(body.to_service())
    content = {"response": envelope(response), "record": to_payload(record)}
    return JSONResponse(status_code=201 if response.success else 200, content=content)


@router.delete("/{uid}")
async def revoke(
    uid: str,
    body: Optional[RevokeRequest] = Body(default=None),
    service: PreparationService = Depends(get_preparation_service),
):
    response = await service.revoke((body or RevokeRequest()).to_service(uid))
    return envelope(response)

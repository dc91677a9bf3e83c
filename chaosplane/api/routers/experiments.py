"""Experiment endpoints."""

from typing import Optional

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse

from chaosplane.api.deps import get_experiment_service
from chaosplane.schemas.experiment import CreateExperimentRequest, DestroyExperimentRequest
from chaosplane.schemas.records import envelope, to_payload
from chaosplane.services.experiment import ExperimentService

router = APIRouter(prefix="/experiments", tags=["experiments"])


@router.post("", status_code=201)
async def create_experiment(
    body: CreateExperimentRequest,
    service: ExperimentService = Depends(get_experiment_service),
):
    """Create an experiment. 201 when the executor succeeded, 200 when it reported failure."""
    response, record = await service.create(body.to_service())
    content = {"response": envelope(response), "record": to_payload(record)}
    return JSONResponse(status_code=201 if response.success else 200, content=content)


@router.delete("/{uid}")
async def destroy_experiment(
    uid: str,
    body: Optional[DestroyExperimentRequest] = Body(default=None),
    service: ExperimentService = Depends(get_experiment_service),
):
    """Destroy an experiment; the body is only consulted when no record exists."""
    request = (body or DestroyExperimentRequest()).to_service(uid)
    response = await service.destroy(request)
    return envelope(response)


@router.get("/{uid}")
async def get_experiment(
    uid: str,
    service: ExperimentService = Depends(get_experiment_service),
):
    return to_payload(await service.query(uid))

"""Status query endpoint."""

from fastapi import APIRouter, Depends, Query

from chaosplane.api.deps import get_experiment_service
from chaosplane.schemas.records import envelope
from chaosplane.services.experiment import ExperimentService, StatusQuery

router = APIRouter(tags=["status"])


@router.get("/status")
async def status(
    type: str = Query(default=""),
    target: str = Query(default=""),
    action: str = Query(default=""),
    flag_filter: str = Query(default="", alias="flag-filter"),
    limit: str = Query(default=""),
    status: str = Query(default=""),
    uid: str = Query(default=""),
    asc: bool = Query(default=False),
    service: ExperimentService = Depends(get_experiment_service),
):
    """Query experiments (type=create|destroy|c|d), preparations (prepare|revoke|p|r), or either by uid."""
    query = StatusQuery(
        type=type,
        target=target,
        action=action,
        flag=flag_filter,
        limit=limit,
        status=status,
        uid=uid,
        asc=asc,
    )
    return envelope(await service.status(query))

"""Output schemas for stored records and the response envelope."""

from typing import Any

from pydantic import BaseModel

from chaosplane.db.models import ExperimentModel, PreparationRecord
from chaosplane.errors import Response


class ExperimentOut(BaseModel):
    id: int
    uid: str
    command: str
    sub_command: str
    flag: str
    status: str
    error: str
    create_time: str
    update_time: str

    model_config = {"from_attributes": True}


class PreparationOut(BaseModel):
    id: int
    uid: str
    program_type: str
    process: str
    port: str
    pid: str
    status: str
    error: str
    create_time: str
    update_time: str

    model_config = {"from_attributes": True}


def to_payload(value: Any) -> Any:
    """JSON-ready form of a record, a list of records, or anything else."""
    if isinstance(value, ExperimentModel):
        return ExperimentOut.model_validate(value).model_dump()
    if isinstance(value, PreparationRecord):
        return PreparationOut.model_validate(value).model_dump()
    if isinstance(value, (list, tuple)):
        return [to_payload(item) for item in value]
    return value


def envelope(response: Response) -> dict:
    body = response.model_dump(exclude={"result"})
    body["result"] = to_payload(response.result)
    return body

"""Pydantic schemas for experiment requests."""

from typing import Optional

from pydantic import BaseModel, Field

from chaosplane.services.experiment import CreateRequest, DestroyRequest


class CreateExperimentRequest(BaseModel):
    uid: str = Field(default="", max_length=32)
    scope: str = ""
    target: str = ""
    action: str = ""
    flags: dict[str, str] = Field(default_factory=dict)
    description: str = ""

    def to_service(self) -> CreateRequest:
        return CreateRequest(
            uid=self.uid,
            scope=self.scope,
            target=self.target,
            action=self.action,
            flags=dict(self.flags),
            description=self.description,
        )


class DestroyExperimentRequest(BaseModel):
    """Body of a destroy. ``target``/``action``/``flags`` matter only when no record exists."""

    uid: str = ""
    scope: str = ""
    target: str = ""
    action: str = ""
    flags: Optional[dict[str, str]] = None

    def to_service(self, uid: str) -> DestroyRequest:
        return DestroyRequest(
            uid=uid,
            scope=self.scope,
            target=self.target,
            action=self.action,
            flags=dict(self.flags or {}),
        )

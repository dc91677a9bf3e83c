"""Pydantic schemas for preparation requests."""

from pydantic import BaseModel, Field

from chaosplane.services.preparation import PrepareRequest as PrepareCommand
from chaosplane.services.preparation import RevokeRequest as RevokeCommand


class PrepareRequest(BaseModel):
    type: str = ""
    process: str = ""
    pid: str = ""
    java_home: str = Field(default="", alias="javaHome")
    async_: bool = Field(default=False, alias="async")
    endpoint: str = ""
    uid: str = Field(default="", max_length=32)
    refresh: bool = False
    port: str = ""

    model_config = {"populate_by_name": True}

    def to_service(self) -> PrepareCommand:
        return PrepareCommand(
            type=self.type,
            process=self.process,
            pid=self.pid,
            java_home=self.java_home,
            async_=self.async_,
            endpoint=self.endpoint,
            uid=self.uid,
            refresh=self.refresh,
            port=self.port,
        )


class RevokeRequest(BaseModel):
    uid: str = ""
    type: str = ""
    process: str = ""
    pid: str = ""

    def to_service(self, uid: str) -> RevokeCommand:
        return RevokeCommand(uid=uid, type=self.type, process=self.process, pid=self.pid)

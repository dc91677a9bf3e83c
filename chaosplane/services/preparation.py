"""
Preparation Service: attach / detach runtime agents (JVM sandbox only).
"""

from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError

from chaosplane.db.models import PreparationRecord
from chaosplane.db.store import RecordStore
from chaosplane.errors import ChaosError, ErrorKind, Response
from chaosplane.executors.jvm import JvmAttacher
from chaosplane.services.uid import allocate_uid
from chaosplane.status import Status

logger = structlog.get_logger(__name__)

JVM_TYPES = frozenset({"jvm", "java"})
ALREADY_GONE = "connection refused"


@dataclass
class PrepareRequest:
    type: str = ""
    process: str = ""
    pid: str = ""
    java_home: str = ""
    async_: bool = False
    endpoint: str = ""
    uid: str = ""
    refresh: bool = False
    port: str = ""


@dataclass
class RevokeRequest:
    uid: str = ""
    type: str = ""
    process: str = ""
    pid: str = ""


class PreparationService:
    def __init__(self, store: RecordStore, attacher: JvmAttacher):
        self.store = store
        self.attacher = attacher

    async def prepare(self, request: PrepareRequest) -> tuple[Response, Optional[PreparationRecord]]:
        """Attach to a process. On helper failure the helper's response is returned as-is."""
        if (request.type or "").lower() not in JVM_TYPES:
            raise ChaosError(ErrorKind.PARAMETER_ILLEGAL, f"type {request.type}, not support the type")

        uid = request.uid or await allocate_uid(self._preparation_exists)
        response = await self.attacher.prepare(
            process=request.process,
            pid=request.pid,
            java_home=request.java_home,
            port=request.port,
            refresh=request.refresh,
            uid=uid,
        )
        if not response.success:
            return response, None

        record = await self.store.get_preparation(str(response.result))
        return response, record

    async def revoke(self, request: RevokeRequest) -> Response:
        """Detach. An agent that is already gone counts as revoked."""
        if not request.uid:
            raise ChaosError(ErrorKind.PARAMETER_LESS, "uid")
        record = await self.store.get_preparation(request.uid)
        if record is None:
            raise ChaosError(ErrorKind.DATA_NOT_FOUND, request.uid)
        if (record.program_type or "").lower() not in JVM_TYPES:
            raise ChaosError(ErrorKind.PARAMETER_ILLEGAL, f"type {record.program_type}, not support the type")

        response = await self.attacher.revoke(record)
        if response.success or ALREADY_GONE in (response.err or "").lower():
            await self._update(record.uid, Status.REVOKED.value, "")
            logger.info("preparation_revoked", uid=record.uid, already_gone=not response.success)
            return response if response.success else Response.ok("success")

        await self._update(record.uid, record.status, response.err)
        logger.warning("preparation_revoke_failed", uid=record.uid, error=response.err)
        return response

    async def _preparation_exists(self, uid: str) -> bool:
        return await self.store.get_preparation(uid) is not None

    async def _update(self, uid: str, status: str, err: str) -> None:
        try:
            await self.store.update_preparation_status(uid, status, err)
        except (ChaosError, SQLAlchemyError) as exc:
            logger.warning("preparation_status_update_failed", uid=uid, status=status, error=str(exc))

"""Preparation repository."""

from typing import Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from chaosplane.db.models import PreparationRecord, now_timestamp
from chaosplane.db.repositories.base import BaseRepository
from chaosplane.status import Status, upper_first


class PreparationRepository(BaseRepository[PreparationRecord]):
    def __init__(self):
        super().__init__(PreparationRecord)

    async def query_running(
        self,
        db: AsyncSession,
        program_type: str,
        process: str = "",
        pid: str = "",
    ) -> Optional[PreparationRecord]:
        """First Running record of ``program_type`` matching every non-empty identifier."""
        stmt = select(PreparationRecord).where(
            PreparationRecord.program_type == program_type,
            PreparationRecord.status == Status.RUNNING.value,
        )
        if pid:
            stmt = stmt.where(PreparationRecord.pid == pid)
        if process:
            stmt = stmt.where(PreparationRecord.process == process)
        result = await db.execute(stmt.order_by(PreparationRecord.id.asc()).limit(1))
        return result.scalars().first()

    async def query(
        self,
        db: AsyncSession,
        target: str = "",
        status: str = "",
        limit: str = "",
        asc: bool = False,
    ) -> Sequence[PreparationRecord]:
        stmt = select(PreparationRecord)
        if target:
            stmt = stmt.where(PreparationRecord.program_type == target)
        if status:
            stmt = stmt.where(PreparationRecord.status == upper_first(status))
        return await self.find(db, stmt, limit=limit, asc=asc)

    async def set_port(self, db: AsyncSession, uid: str, port: str) -> int:
        """Record the attach port. Only the first assignment sticks."""
        result = await db.execute(
            update(PreparationRecord)
            .where(PreparationRecord.uid == uid, PreparationRecord.port == "")
            .values(port=port, update_time=now_timestamp())
        )
        return result.rowcount


preparation_repo = PreparationRepository()

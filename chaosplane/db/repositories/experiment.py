"""Experiment repository."""

from typing import Mapping, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from chaosplane.db.models import ExperimentModel
from chaosplane.db.repositories.base import BaseRepository
from chaosplane.flags import parse_flags
from chaosplane.status import upper_first


class ExperimentRepository(BaseRepository[ExperimentModel]):
    def __init__(self):
        super().__init__(ExperimentModel)

    async def query(
        self,
        db: AsyncSession,
        target: str = "",
        action: str = "",
        flag: str = "",
        status: str = "",
        limit: str = "",
        asc: bool = False,
    ) -> Sequence[ExperimentModel]:
        """Filter on command / sub_command / flag substring / status."""
        stmt = select(ExperimentModel)
        if target:
            stmt = stmt.where(ExperimentModel.command == target)
        if action:
            stmt = stmt.where(ExperimentModel.sub_command == action)
        if flag:
            stmt = stmt.where(ExperimentModel.flag.contains(flag, autoescape=True))
        if status:
            stmt = stmt.where(ExperimentModel.status == upper_first(status))
        return await self.find(db, stmt, limit=limit, asc=asc)

    async def query_by_command(
        self,
        db: AsyncSession,
        command: str,
        sub_command: str,
        flags: Optional[Mapping[str, str]] = None,
    ) -> list[ExperimentModel]:
        """Records for ``command``/``sub_command`` whose flags agree with every non-empty entry."""
        records = await self.query(db, target=command, action=sub_command, asc=True)
        if not flags:
            return list(records)
        wanted = {key: value for key, value in flags.items() if value}
        matched = []
        for record in records:
            record_flags = parse_flags(record.flag)
            if all(record_flags.get(key) == value for key, value in wanted.items()):
                matched.append(record)
        return matched


experiment_repo = ExperimentRepository()

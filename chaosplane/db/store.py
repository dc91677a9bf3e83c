"""
Record Store: durable CRUD for experiment and preparation records.

A single process-wide instance owns the engine. Each operation runs in its
own session/transaction; backend failures (including unique-constraint
violations on ``uid``) surface as ChaosError(DATABASE_ERROR).

Usage:
    store = RecordStore(resolve_datafile(settings.datafile_path))
    await store.open()          # connect + migrate (MigrationError is fatal)
    await store.insert_experiment(ExperimentModel(uid=..., ...))
    await store.close()
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Mapping, Optional, Sequence, Union

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from chaosplane.db.engine import create_engine, create_session_factory
from chaosplane.db.migrate import migrate
from chaosplane.db.models import ExperimentModel, PreparationRecord
from chaosplane.db.repositories.experiment import experiment_repo
from chaosplane.db.repositories.preparation import preparation_repo
from chaosplane.errors import ChaosError, ErrorKind

logger = structlog.get_logger(__name__)


class RecordStore:
    """Experiment / preparation storage backed by one embedded database file."""

    def __init__(self, datafile: Union[str, Path], echo: bool = False):
        self.datafile = Path(datafile)
        self._echo = echo
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None
        self.schema_version: Optional[int] = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("record store is not open")
        return self._engine

    async def open(self) -> None:
        """Open (or create) the datastore and run the migration protocol."""
        if self._engine is not None:
            return
        engine = create_engine(self.datafile, echo=self._echo)
        try:
            self.schema_version = await migrate(engine)
        except Exception:
            await engine.dispose()
            raise
        self._engine = engine
        self._session_factory = create_session_factory(engine)
        logger.info("record_store_opened", datafile=str(self.datafile), schema_version=self.schema_version)

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("record_store_closed")

    @asynccontextmanager
    async def session(self, operation: str) -> AsyncGenerator[AsyncSession, None]:
        """Provide a session with commit/rollback; backend errors become DATABASE_ERROR."""
        if self._session_factory is None:
            raise RuntimeError("record store is not open")
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.error("database_operation_failed", operation=operation, error=str(exc))
                raise ChaosError(ErrorKind.DATABASE_ERROR, operation, exc) from exc

    # ── Experiments ───────────────────────────────────────────────────────

    async def insert_experiment(self, record: ExperimentModel) -> ExperimentModel:
        async with self.session("insert") as db:
            return await experiment_repo.insert(db, record)

    async def update_experiment_status(self, uid: str, status: str, err: str = "") -> None:
        async with self.session("update") as db:
            await experiment_repo.update_by_uid(db, uid, status=status, error=err)

    async def get_experiment(self, uid: str) -> Optional[ExperimentModel]:
        async with self.session("query") as db:
            return await experiment_repo.get_by_uid(db, uid)

    async def query_experiments(
        self,
        target: str = "",
        action: str = "",
        flag: str = "",
        status: str = "",
        limit: str = "",
        asc: bool = False,
    ) -> Sequence[ExperimentModel]:
        async with self.session("query") as db:
            return await experiment_repo.query(
                db, target=target, action=action, flag=flag, status=status, limit=limit, asc=asc
            )

    async def query_experiments_by_command(
        self, command: str, sub_command: str, flags: Optional[Mapping[str, str]] = None
    ) -> list[ExperimentModel]:
        async with self.session("query") as db:
            return await experiment_repo.query_by_command(db, command, sub_command, flags)

    async def delete_experiment(self, uid: str) -> None:
        async with self.session("delete") as db:
            await experiment_repo.delete_by_uid(db, uid)

    # ── Preparations ──────────────────────────────────────────────────────

    async def insert_preparation(self, record: PreparationRecord) -> PreparationRecord:
        async with self.session("insert") as db:
            return await preparation_repo.insert(db, record)

    async def get_preparation(self, uid: str) -> Optional[PreparationRecord]:
        async with self.session("query") as db:
            return await preparation_repo.get_by_uid(db, uid)

    async def query_running_preparation(
        self, program_type: str, process: str = "", pid: str = ""
    ) -> Optional[PreparationRecord]:
        async with self.session("query") as db:
            return await preparation_repo.query_running(db, program_type, process=process, pid=pid)

    async def update_preparation_status(self, uid: str, status: str, err: str = "") -> None:
        async with self.session("update") as db:
            await preparation_repo.update_by_uid(db, uid, status=status, error=err)

    async def update_preparation_port(self, uid: str, port: str) -> None:
        async with self.session("update") as db:
            await preparation_repo.set_port(db, uid, port)

    async def update_preparation_pid(self, uid: str, pid: str) -> None:
        async with self.session("update") as db:
            await preparation_repo.update_by_uid(db, uid, pid=pid)

    async def query_preparations(
        self, target: str = "", status: str = "", limit: str = "", asc: bool = False
    ) -> Sequence[PreparationRecord]:
        async with self.session("query") as db:
            return await preparation_repo.query(db, target=target, status=status, limit=limit, asc=asc)

"""
Experiment Service: create / destroy / status over the record store and dispatcher.

Lifecycle of one experiment:

    create   ->  insert (Created)  ->  dispatch  ->  Success | Error
    destroy  ->  revive model from the record  ->  dispatch(destroy)  ->  Destroyed

Post-dispatch status updates are best effort: the executor's answer is
authoritative, so a failing update is logged and swallowed.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError

from chaosplane.db.models import ExperimentModel
from chaosplane.db.store import RecordStore
from chaosplane.errors import ChaosError, ErrorKind, Response
from chaosplane.executors.base import ExpModel
from chaosplane.flags import format_flags, join_sub_command, parse_flags, split_sub_command
from chaosplane.services.dispatcher import Dispatcher, ExecutionRequest
from chaosplane.services.uid import allocate_uid
from chaosplane.status import Status

logger = structlog.get_logger(__name__)

EXPERIMENT_TYPES = frozenset({"create", "destroy", "c", "d"})
PREPARATION_TYPES = frozenset({"prepare", "revoke", "p", "r"})


# ── Requests ──────────────────────────────────────────────────────────────


@dataclass
class CreateRequest:
    target: str = ""
    action: str = ""
    scope: str = ""
    uid: str = ""
    flags: dict[str, str] = field(default_factory=dict)
    description: str = ""


@dataclass
class DestroyRequest:
    uid: str = ""
    scope: str = ""
    target: str = ""
    action: str = ""
    flags: dict[str, str] = field(default_factory=dict)


@dataclass
class StatusQuery:
    type: str = ""
    target: str = ""
    action: str = ""
    flag: str = ""
    limit: str = ""
    status: str = ""
    uid: str = ""
    asc: bool = False


# ── Service ───────────────────────────────────────────────────────────────


class ExperimentService:
    def __init__(self, store: RecordStore, dispatcher: Dispatcher):
        self.store = store
        self.dispatcher = dispatcher

    async def create(self, request: CreateRequest) -> tuple[Response, ExperimentModel]:
        """Insert a Created record, dispatch, then settle the record on Success or Error.

        Raises ChaosError for validation failures, store failures and a missing
        executor. In the last case the record is left at Created.
        """
        if not request.target or not request.action:
            raise ChaosError(ErrorKind.PARAMETER_LESS, "target|action")

        uid = request.uid or await allocate_uid(self._experiment_exists)
        flags = dict(request.flags or {})
        command, sub_command = join_sub_command(request.scope, request.target, request.action)

        record = await self.store.insert_experiment(
            ExperimentModel(
                uid=uid,
                command=command,
                sub_command=sub_command,
                flag=format_flags(flags),
                status=Status.CREATED.value,
                error="",
            )
        )
        logger.info("experiment_created", uid=uid, command=command, sub_command=sub_command)

        model = ExpModel(target=request.target, action=request.action, scope=request.scope, flags=flags)
        response = await self.dispatcher.dispatch(
            ExecutionRequest(
                scope=request.scope,
                target=request.target,
                action=request.action,
                uid=uid,
                model=model,
                destroy=False,
            )
        )

        if response.success:
            await self._settle(record, Status.SUCCESS, "")
            response.result = uid
        else:
            await self._settle(record, Status.ERROR, response.err)
            logger.info("experiment_failed", uid=uid, code=response.code, error=response.err)
        return response, record

    async def destroy(self, request: DestroyRequest) -> Response:
        """Tear down the injection identified by ``request.uid``."""
        if not request.uid:
            raise ChaosError(ErrorKind.PARAMETER_LESS, "uid")

        record = await self.store.get_experiment(request.uid)
        if record is not None:
            scope, target, action = split_sub_command(record.command, record.sub_command)
            model = ExpModel(target=target, action=action, scope=scope, flags=parse_flags(record.flag))
        elif request.target and request.action:
            scope, target, action = request.scope, request.target, request.action
            model = ExpModel(target=target, action=action, scope=scope, flags=dict(request.flags or {}))
        else:
            raise ChaosError(ErrorKind.DATA_NOT_FOUND, request.uid)

        response = await self.dispatcher.dispatch(
            ExecutionRequest(
                scope=scope,
                target=target,
                action=action,
                uid=request.uid,
                model=model,
                destroy=True,
            )
        )
        if response.success:
            if record is not None:
                await self._settle(record, Status.DESTROYED, "")
            logger.info("experiment_destroyed", uid=request.uid)
        return response

    async def status(self, query: StatusQuery) -> Response:
        kind = (query.type or "").lower()
        uid = query.uid

        if kind in EXPERIMENT_TYPES:
            if uid:
                return Response.ok(await self.query(uid))
            records = await self.store.query_experiments(
                target=query.target,
                action=query.action,
                flag=query.flag,
                status=query.status,
                limit=query.limit,
                asc=query.asc,
            )
            return Response.ok(list(records))

        if kind in PREPARATION_TYPES:
            if uid:
                record = await self.store.get_preparation(uid)
                if record is None:
                    raise ChaosError(ErrorKind.DATA_NOT_FOUND, uid)
                return Response.ok(record)
            records = await self.store.query_preparations(
                target=query.target, status=query.status, limit=query.limit, asc=query.asc
            )
            return Response.ok(list(records))

        if not uid:
            raise ChaosError(ErrorKind.PARAMETER_LESS, "type|uid, must specify the right type or uid")
        found: Optional[Any] = await self.store.get_experiment(uid)
        if found is None:
            found = await self.store.get_preparation(uid)
        if found is None:
            raise ChaosError(ErrorKind.DATA_NOT_FOUND, uid)
        return Response.ok(found)

    async def query(self, uid: str) -> ExperimentModel:
        if not uid:
            raise ChaosError(ErrorKind.PARAMETER_LESS, "uid")
        record = await self.store.get_experiment(uid)
        if record is None:
            raise ChaosError(ErrorKind.DATA_NOT_FOUND, uid)
        return record

    # ── Internals ─────────────────────────────────────────────────────────

    async def _experiment_exists(self, uid: str) -> bool:
        return await self.store.get_experiment(uid) is not None

    async def _settle(self, record: ExperimentModel, status: Status, err: str) -> None:
        try:
            await self.store.update_experiment_status(record.uid, status.value, err)
            stored = await self.store.get_experiment(record.uid)
        except (ChaosError, SQLAlchemyError) as exc:
            logger.warning("experiment_status_update_failed", uid=record.uid, status=status.value, error=str(exc))
            return
        record.status = status.value
        record.error = err
        if stored is not None:
            record.update_time = stored.update_time

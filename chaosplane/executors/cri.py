"""
Container (CRI) executor.

Wraps the host executors: ``(target, action)`` is resolved against the
unprefixed bindings of the registry it is given. With a ``pid`` flag the
wrapped executor runs inside that container process's pid/net/mnt
namespaces; without one it runs directly on the host.
"""

import asyncio
import re
from typing import Optional, Protocol

import structlog

from chaosplane.errors import ErrorKind, Response
from chaosplane.executors.base import ExecContext, Executor, ExpModel, invoke
from chaosplane.executors.channel import LocalChannel
from chaosplane.executors.namespaces import DEFAULT_NAMESPACES, NamespaceError, run_in_namespaces

logger = structlog.get_logger(__name__)

_PID_RE = re.compile(r"^\d+$")


class ExecutorLookup(Protocol):
    def get(self, scope: str, target: str, action: str) -> Optional[Executor]:
        ...


class CriExecutor(Executor):
    supports_in_process = True

    def __init__(self, registry: ExecutorLookup):
        super().__init__()
        self.registry = registry

    @property
    def name(self) -> str:
        return "cri"

    def resolve(self, model: ExpModel) -> Optional[Executor]:
        executor = self.registry.get("", model.target, model.action)
        if executor is None or executor is self or isinstance(executor, CriExecutor):
            return None
        return executor

    async def exec(self, uid: str, ctx: ExecContext, model: ExpModel) -> Response:
        if (model.flags or {}).get("pid"):
            return await self.exec_in_process(uid, ctx, model)

        executor = self.resolve(model)
        if executor is None:
            return Response.fail(ErrorKind.HANDLER_EXEC_NOT_FOUND, f"{model.target}-{model.action}")
        executor.set_channel(LocalChannel())
        return await executor.exec(uid, ctx, model)

    async def exec_in_process(self, uid: str, ctx: ExecContext, model: ExpModel) -> Response:
        """Enter the container's namespaces, then run the wrapped executor there."""
        pid_flag = (model.flags or {}).get("pid", "")
        if not pid_flag:
            logger.error("cri_pid_missing", uid=uid)
            return Response.fail(ErrorKind.PARAMETER_LESS, "pid")
        if not _PID_RE.match(pid_flag.strip()):
            return Response.fail(ErrorKind.PARAMETER_ILLEGAL, f"pid {pid_flag}")

        executor = self.resolve(model)
        if executor is None:
            return Response.fail(ErrorKind.HANDLER_EXEC_NOT_FOUND, f"{model.target}-{model.action}")
        if not executor.supports_in_process:
            executor.set_channel(LocalChannel())

        try:
            resp = await run_in_namespaces(
                int(pid_flag),
                lambda: asyncio.run(invoke(executor, uid, ctx, model)),
                DEFAULT_NAMESPACES,
            )
        except NamespaceError as exc:
            logger.error("cri_enter_namespaces_failed", uid=uid, pid=pid_flag, error=str(exc))
            return Response.fail(ErrorKind.OS_CMD_EXEC_FAILED, exc)
        if resp is None:
            return Response.fail(ErrorKind.OS_CMD_EXEC_FAILED, "no response from underlying executor")
        return resp

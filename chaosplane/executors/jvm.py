"""
JVM executor and sandbox attach helper.

Injections against a Java process go through a sandbox agent attached to
that process. Attaching is a preparation: ``JvmAttacher.prepare`` runs the
sandbox attach script and records the agent's HTTP port; ``JvmExecutor``
then drives the agent's chaos module over HTTP:

    http://127.0.0.1:<port>/sandbox/<namespace>/module/http/chaosblade/create
    http://127.0.0.1:<port>/sandbox/<namespace>/module/http/chaosblade/destroy
"""

import re
from pathlib import Path
from typing import Any, Optional

import httpx
import structlog

from chaosplane.db.models import PreparationRecord
from chaosplane.db.store import RecordStore
from chaosplane.errors import ErrorKind, Response
from chaosplane.executors.base import ExecContext, Executor, ExpModel
from chaosplane.executors.channel import Channel, LocalChannel
from chaosplane.status import Status

logger = structlog.get_logger(__name__)

PROGRAM_TYPE = "jvm"
SANDBOX_HOST = "127.0.0.1"

_SERVER_PORT_RE = re.compile(r"SERVER_PORT\s*:\s*(\d+)")


def sandbox_url(port: str, namespace: str, path: str) -> str:
    return f"http://{SANDBOX_HOST}:{port}/sandbox/{namespace}/module/http/{path}"


def sandbox_response(payload: Any) -> Response:
    """Map the agent's JSON reply onto the response envelope."""
    if not isinstance(payload, dict):
        return Response.fail(ErrorKind.OS_CMD_EXEC_FAILED, f"unexpected sandbox reply: {payload!r}")
    if payload.get("success"):
        return Response.ok(payload.get("result"))
    return Response(
        success=False,
        code=int(payload.get("code") or ErrorKind.OS_CMD_EXEC_FAILED.code),
        err=str(payload.get("error") or payload.get("err") or "sandbox request failed"),
    )


class SandboxClient:
    """Thin httpx client for the sandbox agent."""

    def __init__(self, namespace: str, timeout: float = 30.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.namespace = namespace
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def call(self, port: str, path: str, params: dict[str, str]) -> Response:
        url = sandbox_url(port, self.namespace, path)
        try:
            async with self._client() as client:
                resp = await client.get(url, params=params)
                resp.raise_for_status()
                return sandbox_response(resp.json())
        except httpx.HTTPError as exc:
            logger.warning("sandbox_request_failed", url=url, error=str(exc))
            return Response.fail(ErrorKind.OS_CMD_EXEC_FAILED, url, exc)
        except ValueError as exc:
            logger.warning("sandbox_reply_invalid", url=url, error=str(exc))
            return Response.fail(ErrorKind.OS_CMD_EXEC_FAILED, url, exc)


class JvmExecutor(Executor):
    """Drives the chaos module of an attached sandbox agent."""

    def __init__(self, store: RecordStore, client: SandboxClient):
        super().__init__()
        self.store = store
        self.client = client

    @property
    def name(self) -> str:
        return "jvm"

    async def exec(self, uid: str, ctx: ExecContext, model: ExpModel) -> Response:
        flags = model.flags or {}
        process = flags.get("process", "")
        pid = flags.get("pid", "")
        record = await self.store.query_running_preparation(PROGRAM_TYPE, process=process, pid=pid)
        if record is None:
            logger.info("jvm_preparation_missing", uid=uid, process=process, pid=pid)
            return Response.fail(ErrorKind.DATA_NOT_FOUND, f"running jvm preparation for {process or pid}")
        if not record.port:
            return Response.fail(ErrorKind.DATA_NOT_FOUND, f"sandbox port of preparation {record.uid}")

        if ctx.is_destroy(uid):
            params = {"suid": uid, "target": model.target, "action": model.action}
            return await self.client.call(record.port, "chaosblade/destroy", params)

        params = {key: value for key, value in flags.items() if key not in ("process", "pid")}
        params.update(suid=uid, target=model.target, action=model.action)
        logger.info("jvm_inject", uid=uid, target=model.target, action=model.action, port=record.port)
        return await self.client.call(record.port, "chaosblade/create", params)


class JvmAttacher:
    """Attaches and detaches the sandbox agent, keeping the preparation record current."""

    def __init__(
        self,
        store: RecordStore,
        client: SandboxClient,
        sandbox_home: str,
        channel: Optional[Channel] = None,
        timeout: float = 30.0,
    ):
        self.store = store
        self.client = client
        self.sandbox_home = Path(sandbox_home)
        self.channel = channel or LocalChannel()
        self.timeout = timeout

    @property
    def script(self) -> str:
        return str(self.sandbox_home / "bin" / "sandbox.sh")

    async def prepare(
        self,
        process: str = "",
        pid: str = "",
        java_home: str = "",
        port: str = "",
        refresh: bool = False,
        uid: str = "",
    ) -> Response:
        """Attach to ``process``/``pid``; result is the preparation uid.

        ``uid`` names the record inserted when no running attachment is reused.
        """
        if not process and not pid:
            return Response.fail(ErrorKind.PARAMETER_LESS, "process|pid")

        existing = await self.store.query_running_preparation(PROGRAM_TYPE, process=process, pid=pid)
        if existing is not None and not refresh:
            logger.info("jvm_already_attached", uid=existing.uid, process=process, pid=pid)
            return Response.ok(existing.uid)

        if existing is not None:
            record = existing
        else:
            if not uid:
                return Response.fail(ErrorKind.PARAMETER_LESS, "uid")
            record = await self.store.insert_preparation(
                PreparationRecord(
                    uid=uid,
                    program_type=PROGRAM_TYPE,
                    process=process,
                    pid=pid,
                    port="",
                    status=Status.CREATED.value,
                    error="",
                )
            )

        pid = pid or record.pid
        if not pid:
            found = await self.channel.run("pgrep", ["-f", process], timeout=self.timeout)
            if not found.success or not str(found.result or "").strip():
                err = found.err or f"process {process} not found"
                await self.store.update_preparation_status(record.uid, Status.ERROR.value, err)
                return Response.fail(ErrorKind.DATA_NOT_FOUND, f"process {process}")
            pid = str(found.result).split()[0]
            await self.store.update_preparation_pid(record.uid, pid)

        args = ["-p", pid, "-n", self.client.namespace]
        if port:
            args.extend(["-P", port])
        env = {"JAVA_HOME": java_home} if java_home else None
        resp = await self.channel.run(self.script, args, timeout=self.timeout, env=env)
        if not resp.success:
            await self.store.update_preparation_status(record.uid, Status.ERROR.value, resp.err)
            logger.warning("jvm_attach_failed", uid=record.uid, pid=pid, error=resp.err)
            return resp

        match = _SERVER_PORT_RE.search(str(resp.result or ""))
        attached_port = match.group(1) if match else port
        if attached_port:
            await self.store.update_preparation_port(record.uid, attached_port)
        await self.store.update_preparation_status(record.uid, Status.RUNNING.value, "")
        logger.info("jvm_attached", uid=record.uid, pid=pid, port=attached_port)
        return Response.ok(record.uid)

    async def revoke(self, record: PreparationRecord) -> Response:
        """Shut the agent down. A missing agent shows up as "connection refused"."""
        if record.port:
            return await self.client.call(record.port, "sandbox-control/shutdown", {})
        if not record.pid:
            return Response.fail(ErrorKind.DATA_NOT_FOUND, f"pid of preparation {record.uid}")
        args = ["-p", record.pid, "-n", self.client.namespace, "-S"]
        return await self.channel.run(self.script, args, timeout=self.timeout)

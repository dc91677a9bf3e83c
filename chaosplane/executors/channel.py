"""
Channels: how an executor reaches its target.

LocalChannel runs a command as a local subprocess. Output is captured; a
non-zero exit status or a missing binary becomes an OS_CMD_EXEC_FAILED
response carrying stderr (or stdout when stderr is empty).
"""

import asyncio
import os
from abc import ABC, abstractmethod
from typing import Mapping, Optional, Sequence

import structlog

from chaosplane.errors import ErrorKind, Response

logger = structlog.get_logger(__name__)


class Channel(ABC):
    """Transport used by executors to run commands against their target."""

    name = "channel"

    @abstractmethod
    async def run(
        self,
        command: str,
        args: Sequence[str] = (),
        timeout: Optional[float] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> Response:
        ...


class LocalChannel(Channel):
    name = "local"

    async def run(
        self,
        command: str,
        args: Sequence[str] = (),
        timeout: Optional[float] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> Response:
        try:
            proc = await asyncio.create_subprocess_exec(
                command,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env={**os.environ, **env} if env else None,
            )
        except OSError as exc:
            logger.warning("channel_spawn_failed", command=command, error=str(exc))
            return Response.fail(ErrorKind.OS_CMD_EXEC_FAILED, command, exc)

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            logger.warning("channel_command_timeout", command=command, timeout=timeout)
            return Response.fail(ErrorKind.OS_CMD_EXEC_FAILED, command, f"timed out after {timeout}s")

        out = stdout.decode(errors="replace").strip()
        if proc.returncode != 0:
            detail = stderr.decode(errors="replace").strip() or out
            logger.info("channel_command_failed", command=command, returncode=proc.returncode)
            return Response.fail(ErrorKind.OS_CMD_EXEC_FAILED, detail)
        return Response.ok(out)

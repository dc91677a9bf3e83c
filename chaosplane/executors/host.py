"""
Host OS executor and the in-process CPU load worker pool.

``load`` is realised inside this process: one background thread per
experiment uid burns a fraction of a CPU with a 100 ms duty cycle
(busy ``percent`` ms, idle the rest) until its stop event is set.

Every other host action is delegated to the external OS fault tool through
the executor's channel:

    <os_exec_bin> create|destroy <target> <action> --k=v ... --uid=<uid>
"""

import re
import threading
import time
from typing import Optional

import structlog

from chaosplane.errors import ErrorKind, Response
from chaosplane.executors.base import ExecContext, Executor, ExpModel
from chaosplane.executors.channel import LocalChannel

logger = structlog.get_logger(__name__)

CPU_PERCENT_FLAG = "cpu-percent"
WINDOW_SECONDS = 0.1

_INT_RE = re.compile(r"^[+-]?\d+$")


class CpuLoadPool:
    """At most one cancellable CPU burner per uid.

    The map is guarded by a single lock; each worker's stop event is its only
    coordination primitive and is dropped from the map once signalled.
    """

    def __init__(self, window: float = WINDOW_SECONDS):
        self.window = window
        self._lock = threading.Lock()
        self._workers: dict[str, threading.Event] = {}
        self._threads: dict[str, threading.Thread] = {}

    def __contains__(self, uid: str) -> bool:
        with self._lock:
            return uid in self._workers

    def __len__(self) -> int:
        with self._lock:
            return len(self._workers)

    def start(self, uid: str, percent: int) -> bool:
        """Spawn a worker for ``uid``. False if one already exists."""
        with self._lock:
            if uid in self._workers:
                return False
            stop = threading.Event()
            thread = threading.Thread(
                target=self._burn,
                args=(uid, percent, stop),
                name=f"cpu-load-{uid}",
                daemon=True,
            )
            self._workers[uid] = stop
            self._threads[uid] = thread
        thread.start()
        return True

    def stop(self, uid: str) -> bool:
        """Signal and forget the worker for ``uid``. False if there was none."""
        with self._lock:
            stop = self._workers.pop(uid, None)
            self._threads.pop(uid, None)
        if stop is None:
            return False
        stop.set()
        return True

    def stop_all(self, timeout: Optional[float] = None) -> None:
        with self._lock:
            workers = list(self._workers.values())
            threads = list(self._threads.values())
            self._workers.clear()
            self._threads.clear()
        for stop in workers:
            stop.set()
        for thread in threads:
            thread.join(timeout)

    def _burn(self, uid: str, percent: int, stop: threading.Event) -> None:
        busy = self.window * percent / 100
        idle = self.window - busy
        logger.info("cpu_worker_started", uid=uid, percent=percent)
        while not stop.is_set():
            end = time.perf_counter() + busy
            while time.perf_counter() < end:
                if stop.is_set():
                    break
            if idle > 0 and stop.wait(idle):
                break
        logger.info("cpu_worker_stopped", uid=uid)


class OsExecutor(Executor):
    """Host-scoped executor."""

    supports_in_process = True
    IN_PROCESS_ACTIONS = frozenset({"load"})

    def __init__(self, exec_bin: str = "chaos_os", pool: Optional[CpuLoadPool] = None, timeout: float = 60.0):
        super().__init__()
        self.exec_bin = exec_bin
        self.pool = pool or CpuLoadPool()
        self.timeout = timeout

    @property
    def name(self) -> str:
        return "os"

    async def exec(self, uid: str, ctx: ExecContext, model: ExpModel) -> Response:
        if model.action in self.IN_PROCESS_ACTIONS:
            return await self.exec_in_process(uid, ctx, model)
        return await self._exec_external(uid, ctx, model)

    async def exec_in_process(self, uid: str, ctx: ExecContext, model: ExpModel) -> Response:
        if model.action not in self.IN_PROCESS_ACTIONS:
            return Response.fail(ErrorKind.HANDLER_EXEC_NOT_FOUND, f"{model.target}-{model.action} in-process")

        if ctx.is_destroy(uid):
            if self.pool.stop(uid):
                logger.info("cpu_worker_destroyed", uid=uid)
            else:
                logger.info("cpu_worker_destroy_unknown_uid", uid=uid)
            return Response.ok("destroyed")

        raw = (model.flags or {}).get(CPU_PERCENT_FLAG, "")
        if not raw:
            return Response.fail(ErrorKind.PARAMETER_ILLEGAL, f"{CPU_PERCENT_FLAG} flag is required")
        if not _INT_RE.match(raw.strip()):
            return Response.fail(ErrorKind.PARAMETER_ILLEGAL, f"{CPU_PERCENT_FLAG} must be integer")
        percent = int(raw.strip())
        if percent <= 0 or percent > 100:
            return Response.fail(ErrorKind.PARAMETER_ILLEGAL, f"{CPU_PERCENT_FLAG} must be between 1 and 100")

        if not self.pool.start(uid, percent):
            return Response.fail(ErrorKind.PARAMETER_ILLEGAL, f"uid {uid} already exists")
        return Response.ok(uid)

    async def _exec_external(self, uid: str, ctx: ExecContext, model: ExpModel) -> Response:
        channel = self.channel or LocalChannel()
        verb = "destroy" if ctx.is_destroy(uid) else "create"
        args = [verb, model.target, model.action]
        args.extend(f"--{key}={value}" for key, value in sorted((model.flags or {}).items()))
        args.append(f"--uid={uid}")
        logger.info("os_exec_external", uid=uid, verb=verb, target=model.target, action=model.action)
        return await channel.run(self.exec_bin, args, timeout=self.timeout)

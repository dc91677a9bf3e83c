"""
Executor registry.

Executors are bound under a key derived from ``(scope, target, action)``:
the non-empty components joined with ``-`` (``"cri-jvm-delay"``,
``"os-load"``). The map is populated at startup and read on every request.
"""

import threading
from dataclasses import dataclass
from typing import Optional

import structlog

from chaosplane.errors import ChaosError, ErrorKind, Response
from chaosplane.executors.base import ExecContext, Executor, ExpModel

logger = structlog.get_logger(__name__)


def executor_key(scope: str, target: str, action: str) -> str:
    return "-".join(part for part in (scope, target, action) if part)


@dataclass
class ExecutionRequest:
    scope: str
    target: str
    action: str
    uid: str
    model: Optional[ExpModel] = None
    destroy: bool = False

    def __post_init__(self):
        if self.model is None:
            self.model = ExpModel(target=self.target, action=self.action, scope=self.scope)


class Dispatcher:
    """Thread-safe ``key -> executor`` map plus request routing."""

    def __init__(self):
        self._lock = threading.Lock()
        self._executors: dict[str, Executor] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._executors)

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._executors)

    def register(self, scope: str, target: str, action: str, executor: Optional[Executor]) -> None:
        """Bind ``executor``, replacing any previous binding. ``None`` is ignored."""
        if executor is None:
            return
        key = executor_key(scope, target, action)
        with self._lock:
            self._executors[key] = executor

    def get(self, scope: str, target: str, action: str) -> Optional[Executor]:
        key = executor_key(scope, target, action)
        with self._lock:
            return self._executors.get(key)

    async def dispatch(self, request: ExecutionRequest) -> Response:
        """Route ``request`` to its executor. Exactly one executor call, no retries."""
        executor = self.get(request.scope, request.target, request.action)
        if executor is None:
            key = executor_key(request.scope, request.target, request.action)
            logger.warning("executor_not_found", key=key, uid=request.uid)
            raise ChaosError(ErrorKind.HANDLER_EXEC_NOT_FOUND, key)

        ctx = ExecContext.destroy(request.uid) if request.destroy else ExecContext.create(request.uid)
        logger.info(
            "dispatch",
            executor=executor.name,
            uid=request.uid,
            target=request.target,
            action=request.action,
            intent=ctx.intent.value,
        )
        return await executor.exec(request.uid, ctx, request.model)

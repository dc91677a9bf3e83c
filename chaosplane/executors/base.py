"""
Executor contract.

An executor performs an injection, or its teardown, against a target. Create
and destroy share one entry point; the ``ExecContext.intent`` tells them apart.

Executors that can run inside the current process (after namespace entry, for
instance) advertise it through ``supports_in_process`` and implement
``exec_in_process``; callers ask the flag instead of probing types.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Optional

from chaosplane.errors import ErrorKind, Response

if TYPE_CHECKING:
    from chaosplane.executors.channel import Channel


class Intent(str, Enum):
    CREATE = "create"
    DESTROY = "destroy"


@dataclass
class ExpModel:
    """Addressed action plus its parameter map."""

    target: str
    action: str
    scope: str = ""
    flags: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ExecContext:
    """Per-invocation context handed to executors."""

    uid: str
    intent: Intent = Intent.CREATE

    @classmethod
    def create(cls, uid: str) -> "ExecContext":
        return cls(uid=uid, intent=Intent.CREATE)

    @classmethod
    def destroy(cls, uid: str) -> "ExecContext":
        return cls(uid=uid, intent=Intent.DESTROY)

    def is_destroy(self, uid: Optional[str] = None) -> bool:
        """True when this is a teardown (of ``uid``, if given)."""
        if self.intent is not Intent.DESTROY:
            return False
        return uid is None or uid == self.uid


class Executor(ABC):
    """Base class for executors registered with the dispatcher."""

    supports_in_process: bool = False

    def __init__(self) -> None:
        self.channel: Optional[Channel] = None

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    def set_channel(self, channel: Channel) -> None:
        self.channel = channel

    @abstractmethod
    async def exec(self, uid: str, ctx: ExecContext, model: ExpModel) -> Response:
        ...

    async def exec_in_process(self, uid: str, ctx: ExecContext, model: ExpModel) -> Response:
        return Response.fail(ErrorKind.HANDLER_EXEC_NOT_FOUND, f"{self.name} has no in-process entry")


async def invoke(executor: Executor, uid: str, ctx: ExecContext, model: ExpModel) -> Response:
    """Run ``executor``, preferring its in-process entry when it has one."""
    if executor.supports_in_process:
        return await executor.exec_in_process(uid, ctx, model)
    return await executor.exec(uid, ctx, model)

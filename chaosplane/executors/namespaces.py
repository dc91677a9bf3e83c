"""
Linux namespace entry.

``run_in_namespaces`` starts a dedicated thread, joins that thread to the
namespaces of ``pid`` and calls ``fn`` there. The thread is never reused, so
the caller's threads (and the event loop) keep their own namespaces.
"""

import asyncio
import os
import threading
from typing import Callable, Sequence, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")

DEFAULT_NAMESPACES = ("pid", "net", "mnt")


class NamespaceError(Exception):
    """Namespace entry failed or is unavailable on this platform."""


def enter_namespaces(pid: int, namespaces: Sequence[str] = DEFAULT_NAMESPACES) -> None:
    """Join the calling thread to the given namespaces of ``pid``."""
    if not hasattr(os, "setns"):
        raise NamespaceError("setns is not available on this platform")
    fds: list[int] = []
    try:
        for ns in namespaces:
            path = f"/proc/{pid}/ns/{ns}"
            try:
                fd = os.open(path, os.O_RDONLY)
            except OSError as exc:
                raise NamespaceError(f"open ns {path} failed: {exc}") from exc
            fds.append(fd)
            try:
                os.setns(fd, 0)
            except OSError as exc:
                raise NamespaceError(f"setns {path} failed: {exc}") from exc
    finally:
        for fd in fds:
            os.close(fd)


async def run_in_namespaces(
    pid: int,
    fn: Callable[[], T],
    namespaces: Sequence[str] = DEFAULT_NAMESPACES,
) -> T:
    """Run ``fn`` on a fresh thread inside the namespaces of ``pid``."""
    loop = asyncio.get_running_loop()
    future: asyncio.Future = loop.create_future()

    def settle(result=None, exc=None) -> None:
        if future.done():
            return
        if exc is not None:
            future.set_exception(exc)
        else:
            future.set_result(result)

    def target() -> None:
        try:
            enter_namespaces(pid, namespaces)
            result = fn()
        except Exception as exc:
            loop.call_soon_threadsafe(settle, None, exc)
        else:
            loop.call_soon_threadsafe(settle, result, None)

    logger.debug("namespace_thread_start", pid=pid, namespaces=list(namespaces))
    threading.Thread(target=target, name=f"ns-{pid}", daemon=True).start()
    return await future

"""Record uid allocation."""

import uuid
from typing import Awaitable, Callable

from chaosplane.errors import ChaosError, ErrorKind

UID_ATTEMPTS = 5


def new_uid() -> str:
    return uuid.uuid4().hex[:16]


async def allocate_uid(exists: Callable[[str], Awaitable[bool]], attempts: int = UID_ATTEMPTS) -> str:
    """Fresh uid that ``exists`` does not already know about."""
    for _ in range(attempts):
        uid = new_uid()
        if not await exists(uid):
            return uid
    raise ChaosError(ErrorKind.GENERATE_UID_FAILED, f"no free uid after {attempts} attempts")

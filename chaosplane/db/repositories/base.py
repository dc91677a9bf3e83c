"""
Generic async repository keyed by ``uid``.

Both record tables share the same access patterns: lookup / delete by uid,
field updates that always refresh ``update_time``, and list queries with the
``limit`` grammar ("N" or "OFFSET,N") and id ordering.
"""

import re
from typing import Any, Generic, Optional, Sequence, Type, TypeVar

from sqlalchemy import Select, delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from chaosplane.db.engine import Base
from chaosplane.db.models import now_timestamp

ModelT = TypeVar("ModelT", bound=Base)

_INT_RE = re.compile(r"^[+-]?\d+$")


def parse_limit(limit: str) -> tuple[Optional[int], Optional[int]]:
    """Parse ``"N"`` or ``"OFFSET,N"`` into ``(offset, count)``.

    Non-integer (or negative) parts are silently ignored and come back as None.
    """
    if not limit:
        return None, None
    values = limit.split(",")
    if len(values) == 1:
        return None, _to_int(values[0])
    return _to_int(values[0]), _to_int(values[1])


def apply_limit(stmt: Select, limit: str) -> Select:
    offset, count = parse_limit(limit)
    if offset is not None:
        stmt = stmt.offset(offset)
    if count is not None:
        stmt = stmt.limit(count)
    return stmt


def _to_int(value: str) -> Optional[int]:
    if not _INT_RE.match(value):
        return None
    number = int(value)
    return number if number >= 0 else None


class BaseRepository(Generic[ModelT]):
    """Generic async CRUD operations for uid-keyed records."""

    def __init__(self, model: Type[ModelT]):
        self.model = model

    async def insert(self, db: AsyncSession, obj: ModelT) -> ModelT:
        """Insert a record, stamping create/update times when unset."""
        if not obj.create_time:
            obj.create_time = now_timestamp()
        if not obj.update_time:
            obj.update_time = obj.create_time
        db.add(obj)
        await db.flush()
        return obj

    async def get_by_uid(self, db: AsyncSession, uid: str) -> Optional[ModelT]:
        result = await db.execute(
            select(self.model).where(self.model.uid == uid).limit(1)
        )
        return result.scalars().first()

    async def update_by_uid(self, db: AsyncSession, uid: str, **values: Any) -> int:
        """Update fields of the record with ``uid``. A missing record is a no-op."""
        values["update_time"] = now_timestamp()
        result = await db.execute(
            update(self.model).where(self.model.uid == uid).values(**values)
        )
        return result.rowcount

    async def delete_by_uid(self, db: AsyncSession, uid: str) -> int:
        result = await db.execute(delete(self.model).where(self.model.uid == uid))
        return result.rowcount

    async def find(self, db: AsyncSession, stmt: Select, limit: str = "", asc: bool = False) -> Sequence[ModelT]:
        stmt = stmt.order_by(self.model.id.asc() if asc else self.model.id.desc())
        stmt = apply_limit(stmt, limit)
        result = await db.execute(stmt)
        return result.scalars().all()

"""
Database engine, session factory, and declarative base.

Uses async SQLAlchemy 2.0 with aiosqlite against a single local file.
"""

from pathlib import Path
from typing import Union

import structlog
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

logger = structlog.get_logger(__name__)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for the record store."""

    pass


def sqlite_url(datafile: Union[str, Path]) -> str:
    return f"sqlite+aiosqlite:///{Path(datafile)}"


def create_engine(datafile: Union[str, Path], echo: bool = False) -> AsyncEngine:
    """Create the async engine for the datastore file.

    The sqlite driver serialises writers; the busy timeout lets concurrent
    requests wait for the write lock instead of failing immediately.
    """
    engine = create_async_engine(
        sqlite_url(datafile),
        echo=echo,
        connect_args={"timeout": 30},
    )
    logger.info("database_engine_created", datafile=str(datafile))
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create the async session factory bound to ``engine``."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

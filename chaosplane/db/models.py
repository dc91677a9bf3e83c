"""
Record store models.

Three tables:
- experiment:  one row per injection instance
- preparation: one row per runtime attachment (e.g. a JVM sandbox)
- schema_meta: single row holding the persisted schema version

Timestamps are fixed-width UTC strings, so lexicographic order is time order.
"""

from datetime import datetime, timezone

from sqlalchemy import Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from chaosplane.db.engine import Base

UID_LENGTH = 32


def now_timestamp() -> str:
    """Sortable UTC timestamp with microsecond precision."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class ExperimentModel(Base):
    """One chaos-injection instance."""

    __tablename__ = "experiment"
    __table_args__ = (
        Index("exp_uid_uidx", "uid", unique=True),
        Index("exp_command_idx", "command"),
        Index("exp_status_idx", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    uid: Mapped[str] = mapped_column(String(UID_LENGTH), nullable=False)
    command: Mapped[str] = mapped_column(String, default="", server_default="")
    sub_command: Mapped[str] = mapped_column(String, default="", server_default="")
    flag: Mapped[str] = mapped_column(String, default="", server_default="")
    status: Mapped[str] = mapped_column(String, default="", server_default="")
    error: Mapped[str] = mapped_column(String, default="", server_default="")
    create_time: Mapped[str] = mapped_column(String, default="", server_default="")
    update_time: Mapped[str] = mapped_column(String, default="", server_default="")

    def __repr__(self) -> str:
        return f"<ExperimentModel uid={self.uid} status={self.status}>"


class PreparationRecord(Base):
    """A runtime attachment that enables injections against a process."""

    __tablename__ = "preparation"
    __table_args__ = (
        Index("pre_uid_uidx", "uid", unique=True),
        Index("pre_type_process_idx", "program_type", "process"),
        Index("pre_status_idx", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    uid: Mapped[str] = mapped_column(String(UID_LENGTH), nullable=False)
    program_type: Mapped[str] = mapped_column(String, default="", server_default="")
    process: Mapped[str] = mapped_column(String, default="", server_default="")
    port: Mapped[str] = mapped_column(String, default="", server_default="")
    pid: Mapped[str] = mapped_column(String, default="", server_default="")
    status: Mapped[str] = mapped_column(String, default="", server_default="")
    error: Mapped[str] = mapped_column(String, default="", server_default="")
    create_time: Mapped[str] = mapped_column(String, default="", server_default="")
    update_time: Mapped[str] = mapped_column(String, default="", server_default="")

    def __repr__(self) -> str:
        return f"<PreparationRecord uid={self.uid} status={self.status}>"


class SchemaMeta(Base):
    """Single-row metadata table; ``version`` gates additive migrations."""

    __tablename__ = "schema_meta"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

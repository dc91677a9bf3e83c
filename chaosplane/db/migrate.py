"""
Schema migration protocol.

Forward-only, additive evolution of the datastore:

1. Align the experiment table with the declared model (create, or add
   missing columns / indexes; never drop anything).
2. Read the persisted schema version from ``schema_meta``.
3. Version current → align the preparation table and stop.
4. Otherwise apply the preparation alterations that are still missing
   (one by one), or create the table from scratch.
5. Persist the current version.

Any failure raises MigrationError; the caller treats it as fatal.
"""

import structlog
from sqlalchemy import Connection, Integer, Table, inspect, select, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from chaosplane.db.models import ExperimentModel, PreparationRecord, SchemaMeta
from chaosplane.errors import MigrationError

logger = structlog.get_logger(__name__)

# Bump when an additive alteration is appended below.
SCHEMA_VERSION = 1

PREPARATION_ALTERATIONS: tuple[tuple[str, str], ...] = (
    ("pid", "ALTER TABLE preparation ADD COLUMN pid VARCHAR DEFAULT ''"),
)


async def migrate(engine: AsyncEngine) -> int:
    """Run the migration protocol. Returns the schema version now persisted."""
    try:
        async with engine.begin() as conn:
            return await conn.run_sync(_migrate)
    except SQLAlchemyError as exc:
        logger.error("schema_migration_failed", error=str(exc))
        raise MigrationError(str(exc)) from exc


async def current_version(engine: AsyncEngine) -> int:
    async with engine.connect() as conn:
        return await conn.run_sync(read_schema_version)


def _migrate(conn: Connection) -> int:
    align_table(conn, ExperimentModel.__table__)

    version = read_schema_version(conn)
    if version > SCHEMA_VERSION:
        raise MigrationError(
            f"datastore schema version {version} is newer than supported version {SCHEMA_VERSION}"
        )
    if version == SCHEMA_VERSION:
        align_table(conn, PreparationRecord.__table__)
        return version

    if inspect(conn).has_table(PreparationRecord.__tablename__):
        existing = _column_names(conn, PreparationRecord.__tablename__)
        for column, ddl in PREPARATION_ALTERATIONS:
            if column in existing:
                continue
            conn.execute(text(ddl))
            logger.info("schema_column_added", table="preparation", column=column)
        align_table(conn, PreparationRecord.__table__)
    else:
        PreparationRecord.__table__.create(conn)
        logger.info("schema_table_created", table="preparation")

    write_schema_version(conn, SCHEMA_VERSION)
    logger.info("schema_version_updated", previous=version, current=SCHEMA_VERSION)
    return SCHEMA_VERSION


def align_table(conn: Connection, table: Table) -> None:
    """Create ``table`` or additively add its missing columns and indexes."""
    if not inspect(conn).has_table(table.name):
        table.create(conn)
        logger.info("schema_table_created", table=table.name)
        return

    quote = conn.dialect.identifier_preparer.quote
    existing = _column_names(conn, table.name)
    for column in table.columns:
        if column.name in existing or column.primary_key:
            continue
        default = "0" if isinstance(column.type, Integer) else "''"
        conn.execute(text(
            f"ALTER TABLE {quote(table.name)} ADD COLUMN {quote(column.name)} "
            f"{column.type.compile(dialect=conn.dialect)} DEFAULT {default}"
        ))
        logger.info("schema_column_added", table=table.name, column=column.name)

    indexes = {index["name"] for index in inspect(conn).get_indexes(table.name)}
    for index in table.indexes:
        if index.name not in indexes:
            index.create(conn)
            logger.info("schema_index_created", table=table.name, index=index.name)


def read_schema_version(conn: Connection) -> int:
    """Persisted schema version; 0 when the metadata table does not exist yet."""
    if not inspect(conn).has_table(SchemaMeta.__tablename__):
        return 0
    version = conn.execute(
        select(SchemaMeta.version).where(SchemaMeta.id == 1)
    ).scalar_one_or_none()
    return version or 0


def write_schema_version(conn: Connection, version: int) -> None:
    SchemaMeta.__table__.create(conn, checkfirst=True)
    result = conn.execute(
        update(SchemaMeta).where(SchemaMeta.id == 1).values(version=version)
    )
    if result.rowcount == 0:
        conn.execute(SchemaMeta.__table__.insert().values(id=1, version=version))


def _column_names(conn: Connection, table_name: str) -> set[str]:
    return {column["name"] for column in inspect(conn).get_columns(table_name)}

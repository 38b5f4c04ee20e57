"""
Versioned schema store.

The database carries a `schema_version` log; MAX(version) is the version the
file is at. Opening a database either creates the full current schema in one
transaction (new file) or applies every pending migration step in ascending
order (existing file).

Each migration step runs in its own transaction: the step's DDL and its
version stamp commit together or not at all, so a failed step is retried
from scratch on the next open. Steps are not atomic with each other; if step
N fails, steps before N stay applied and the next open resumes at N.

Migration steps are strictly additive (new tables, new columns, new indexes)
and are written against Alembic `Operations` with frozen table definitions,
never against the ORM models, which always describe the latest version.
"""

from dataclasses import dataclass
from operator import attrgetter
from typing import Callable, Optional, Sequence
import logging

import sqlalchemy as sa
from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import inspect, select, func, insert
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import AsyncEngine

from core.exceptions import MigrationError
from models import Base, SchemaVersion
from models.base import utcnow

logger = logging.getLogger(__name__)

CURRENT_SCHEMA_VERSION = 2

INITIAL_SCHEMA_DESCRIPTION = "Initial schema with migrations applied"


@dataclass(frozen=True)
class Migration:
    """One additive schema step, identified by the version it brings the database to"""
    version: int
    description: str
    upgrade: Callable[[Operations], None]


# ============================================================================
# Operation helpers
# ============================================================================

def _table_exists(op: Operations, table_name: str) -> bool:
    return inspect(op.get_bind()).has_table(table_name)


def add_column_if_missing(op: Operations, table_name: str, column: sa.Column) -> bool:
    """
    Add a column unless the table already has it.

    Returns True when the column was added.
    """
    existing = {col["name"] for col in inspect(op.get_bind()).get_columns(table_name)}
    if column.name in existing:
        logger.info(f"Column {table_name}.{column.name} already exists, skipping")
        return False
    op.add_column(table_name, column)
    return True


def create_index_if_missing(op: Operations, index_name: str, table_name: str, columns) -> bool:
    existing = {idx["name"] for idx in inspect(op.get_bind()).get_indexes(table_name)}
    if index_name in existing:
        return False
    op.create_index(index_name, table_name, columns)
    return True


def _timestamp(name: str) -> sa.Column:
    return sa.Column(name, sa.DateTime, server_default=sa.text("CURRENT_TIMESTAMP"))


# ============================================================================
# Migration steps
# ============================================================================

def _upgrade_to_v1(op: Operations) -> None:
    """Baseline tables: reference data, jobs and data source status"""
    if not _table_exists(op, "countries"):
        op.create_table(
            "countries",
            sa.Column("id", sa.Text, primary_key=True),
            sa.Column("name", sa.Text, nullable=False),
            sa.Column("common_name", sa.Text),
            sa.Column("iso_alpha2", sa.Text),
            sa.Column("iso_alpha3", sa.Text),
            sa.Column("un_member", sa.Boolean),
            sa.Column("independence_date", sa.Text),
            sa.Column("capital", sa.Text),
            sa.Column("region", sa.Text),
            sa.Column("subregion", sa.Text),
            _timestamp("created_at"),
            _timestamp("updated_at"),
        )

    if not _table_exists(op, "anthems"):
        op.create_table(
            "anthems",
            sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
            sa.Column("country_id", sa.Text, sa.ForeignKey("countries.id"), nullable=False),
            sa.Column("name", sa.Text, nullable=False),
            sa.Column("native_name", sa.Text),
            sa.Column("composer", sa.Text),
            sa.Column("lyricist", sa.Text),
            sa.Column("adopted_date", sa.Text),
            sa.Column("written_date", sa.Text),
            sa.Column("description", sa.Text),
            sa.Column("wikidata_id", sa.Text),
            sa.Column("wikipedia_url", sa.Text),
            _timestamp("created_at"),
            _timestamp("updated_at"),
        )

    if not _table_exists(op, "audio_recordings"):
        op.create_table(
            "audio_recordings",
            sa.Column("id", sa.Text, primary_key=True),
            sa.Column("country_id", sa.Text, sa.ForeignKey("countries.id"), nullable=False),
            sa.Column("title", sa.Text, nullable=False),
            sa.Column("url", sa.Text, nullable=False),
            sa.Column("format", sa.Text),
            sa.Column("duration_seconds", sa.Integer),
            sa.Column("type", sa.Text),
            sa.Column("license", sa.Text),
            sa.Column("source", sa.Text),
            sa.Column("quality", sa.Text),
            sa.Column("file_size_bytes", sa.Integer),
            _timestamp("created_at"),
        )

    if not _table_exists(op, "jobs"):
        op.create_table(
            "jobs",
            sa.Column("id", sa.Text, primary_key=True),
            sa.Column("type", sa.Text, nullable=False),
            sa.Column("status", sa.Text, nullable=False),
            sa.Column("started_at", sa.DateTime),
            sa.Column("completed_at", sa.DateTime),
            sa.Column("error_message", sa.Text),
            sa.Column("records_processed", sa.Integer, server_default=sa.text("0")),
            sa.Column("records_total", sa.Integer),
            sa.Column("metadata", sa.Text),
            _timestamp("created_at"),
        )

    if not _table_exists(op, "data_sources"):
        op.create_table(
            "data_sources",
            sa.Column("id", sa.Text, primary_key=True),
            sa.Column("name", sa.Text, nullable=False),
            sa.Column("url", sa.Text, nullable=False),
            sa.Column("type", sa.Text),
            sa.Column("status", sa.Text),
            sa.Column("last_check_at", sa.DateTime),
            sa.Column("last_success_at", sa.DateTime),
            sa.Column("response_time_ms", sa.Integer),
            sa.Column("error_count", sa.Integer, server_default=sa.text("0")),
            _timestamp("created_at"),
        )

    create_index_if_missing(op, "idx_anthems_country", "anthems", ["country_id"])
    create_index_if_missing(op, "idx_audio_country", "audio_recordings", ["country_id"])
    create_index_if_missing(op, "idx_jobs_status", "jobs", ["status"])
    create_index_if_missing(op, "idx_jobs_type", "jobs", ["type"])


def _upgrade_to_v2(op: Operations) -> None:
    """Data sources and jobs enhancement"""
    add_column_if_missing(op, "data_sources", sa.Column("rate_limit_per_second", sa.Integer, server_default=sa.text("10")))
    add_column_if_missing(op, "data_sources", sa.Column("requires_auth", sa.Boolean, server_default=sa.text("0")))
    add_column_if_missing(op, "data_sources", sa.Column("health_check_endpoint", sa.Text))
    add_column_if_missing(op, "data_sources", sa.Column("download_strategy", sa.Text, server_default="file"))
    add_column_if_missing(op, "data_sources", sa.Column("priority", sa.Integer, server_default=sa.text("100")))

    add_column_if_missing(op, "countries", sa.Column("geojson_geometry", sa.Text))

    if not _table_exists(op, "job_logs"):
        op.create_table(
            "job_logs",
            sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
            sa.Column("job_id", sa.Text, sa.ForeignKey("jobs.id"), nullable=False),
            sa.Column("level", sa.Text, nullable=False),
            sa.Column("message", sa.Text, nullable=False),
            sa.Column("source_id", sa.Text),
            _timestamp("created_at"),
        )

    create_index_if_missing(op, "idx_job_logs_job_id", "job_logs", ["job_id"])
    create_index_if_missing(op, "idx_job_logs_level", "job_logs", ["level"])


MIGRATIONS = (
    Migration(1, "Baseline schema", _upgrade_to_v1),
    Migration(2, "Data sources and jobs enhancement", _upgrade_to_v2),
)


# ============================================================================
# Version log
# ============================================================================

def _read_version(sync_conn: Connection) -> int:
    result = sync_conn.execute(select(func.coalesce(func.max(SchemaVersion.version), 0)))
    return int(result.scalar_one())


def _stamp(sync_conn: Connection, version: int, description: str) -> None:
    sync_conn.execute(
        insert(SchemaVersion.__table__).values(
            version=version,
            description=description,
            applied_at=utcnow()
        )
    )


async def get_schema_version(conn) -> int:
    """
    Effective schema version (0 when nothing was applied).

    Accepts an AsyncConnection or an AsyncSession.
    """
    result = await conn.execute(select(func.coalesce(func.max(SchemaVersion.version), 0)))
    return int(result.scalar_one())


# ============================================================================
# Schema lifecycle
# ============================================================================

async def initialize_schema(engine: AsyncEngine) -> int:
    """Create every current table and stamp CURRENT_SCHEMA_VERSION, in one transaction"""
    logger.info(f"Creating schema version {CURRENT_SCHEMA_VERSION}")
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
            await conn.run_sync(_stamp, CURRENT_SCHEMA_VERSION, INITIAL_SCHEMA_DESCRIPTION)
    except Exception as e:
        raise MigrationError(
            "Failed to initialize schema",
            context={"version": CURRENT_SCHEMA_VERSION},
            original_exception=e
        )
    return CURRENT_SCHEMA_VERSION


def _run_step(sync_conn: Connection, migration: Migration) -> bool:
    # Re-checked inside the transaction so a step is never stamped twice
    if _read_version(sync_conn) >= migration.version:
        return False

    context = MigrationContext.configure(connection=sync_conn)
    migration.upgrade(Operations(context))
    _stamp(sync_conn, migration.version, migration.description)
    return True


def _validate_sequence(migrations: Sequence[Migration]) -> None:
    versions = [m.version for m in migrations]
    if len(set(versions)) != len(versions):
        raise ValueError(f"Duplicate migration versions: {versions}")
    if any(v < 1 for v in versions):
        raise ValueError(f"Migration versions must be positive: {versions}")


async def apply_migrations(
    engine: AsyncEngine,
    migrations: Optional[Sequence[Migration]] = None
) -> int:
    """
    Apply every migration newer than the recorded version, in ascending order.

    Args:
        engine: Engine bound to an existing database
        migrations: Migration steps (defaults to MIGRATIONS)

    Returns:
        The schema version after the run

    Raises:
        MigrationError: If a step fails. The failing step is rolled back and
            its version is not stamped.
    """
    steps = sorted(MIGRATIONS if migrations is None else migrations, key=attrgetter("version"))
    _validate_sequence(steps)

    try:
        async with engine.connect() as conn:
            current = await get_schema_version(conn)
    except Exception as e:
        raise MigrationError("Failed to get schema version", original_exception=e)

    latest = steps[-1].version if steps else current
    if current >= latest:
        if current > latest:
            logger.warning(
                f"Database schema version {current} is newer than this release "
                f"supports ({latest}); leaving it untouched"
            )
        return current

    for migration in steps:
        if current >= migration.version:
            continue

        logger.info(f"Applying migration {migration.version}: {migration.description}")
        try:
            async with engine.begin() as conn:
                applied = await conn.run_sync(_run_step, migration)
        except Exception as e:
            raise MigrationError(
                f"Failed to apply migration {migration.version}",
                context={
                    "version": migration.version,
                    "current_version": current,
                    "description": migration.description
                },
                original_exception=e
            )

        if not applied:
            logger.info(f"Migration {migration.version} already applied, skipping")
        current = migration.version

    logger.info(f"Schema is at version {current}")
    return current


async def ensure_schema(
    engine: AsyncEngine,
    migrations: Optional[Sequence[Migration]] = None
) -> int:
    """
    Bring the database behind `engine` to the current schema.

    An empty file gets the full schema in one shot. A file with tables but
    no schema_version log is treated as version 0 and migrated step by step,
    which adds whatever the steps find missing.
    """
    try:
        async with engine.connect() as conn:
            table_names = await conn.run_sync(lambda sync_conn: set(inspect(sync_conn).get_table_names()))
    except Exception as e:
        raise MigrationError("Failed to inspect database", original_exception=e)

    if not table_names:
        return await initialize_schema(engine)

    if SchemaVersion.__tablename__ not in table_names:
        logger.warning("Database has no schema_version log; migrating from version 0")
        async with engine.begin() as conn:
            await conn.run_sync(SchemaVersion.__table__.create, checkfirst=True)

    return await apply_migrations(engine, migrations)

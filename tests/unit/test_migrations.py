"""
Unit tests for schema creation and migrations
"""

import sqlite3

import pytest
import sqlalchemy as sa

from core.database import create_engine, open_database
from core.exceptions import DatabaseInitError, MigrationError
from core.migrations import (
    CURRENT_SCHEMA_VERSION,
    MIGRATIONS,
    Migration,
    add_column_if_missing,
    apply_migrations,
    get_schema_version,
)

# Version 1 layout as an older release wrote it
V1_DDL = """
CREATE TABLE schema_version (
    version INTEGER PRIMARY KEY,
    applied_at DATETIME,
    description TEXT
);
CREATE TABLE countries (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    common_name TEXT,
    iso_alpha2 TEXT,
    iso_alpha3 TEXT,
    un_member BOOLEAN,
    independence_date TEXT,
    capital TEXT,
    region TEXT,
    subregion TEXT,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP{extra_country_columns}
);
CREATE TABLE anthems (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    country_id TEXT NOT NULL REFERENCES countries(id),
    name TEXT NOT NULL,
    native_name TEXT,
    composer TEXT,
    lyricist TEXT,
    adopted_date TEXT,
    written_date TEXT,
    description TEXT,
    wikidata_id TEXT,
    wikipedia_url TEXT,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
);
CREATE TABLE audio_recordings (
    id TEXT PRIMARY KEY,
    country_id TEXT NOT NULL REFERENCES countries(id),
    title TEXT NOT NULL,
    url TEXT NOT NULL,
    format TEXT,
    duration_seconds INTEGER,
    type TEXT,
    license TEXT,
    source TEXT,
    quality TEXT,
    file_size_bytes INTEGER,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP
);
CREATE TABLE jobs (
    id TEXT PRIMARY KEY,
    type TEXT NOT NULL,
    status TEXT NOT NULL,
    started_at DATETIME,
    completed_at DATETIME,
    error_message TEXT,
    records_processed INTEGER DEFAULT 0,
    records_total INTEGER,
    metadata TEXT,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP
);
CREATE TABLE data_sources (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    url TEXT NOT NULL,
    type TEXT,
    status TEXT,
    last_check_at DATETIME,
    last_success_at DATETIME,
    response_time_ms INTEGER,
    error_count INTEGER DEFAULT 0,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP
);
"""


def write_v1_database(path, with_version_log=True, extra_country_columns=""):
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path)
    try:
        ddl = V1_DDL.format(extra_country_columns=extra_country_columns)
        if not with_version_log:
            ddl = ddl.split(";", 1)[1]
        conn.executescript(ddl)
        if with_version_log:
            conn.execute(
                "INSERT INTO schema_version (version, applied_at, description) "
                "VALUES (1, '2024-01-01 00:00:00', 'Initial schema')"
            )
        conn.execute("INSERT INTO countries (id, name, iso_alpha3) VALUES ('NOR', 'Kingdom of Norway', 'NOR')")
        conn.execute(
            "INSERT INTO anthems (country_id, name, wikidata_id) "
            "VALUES ('NOR', 'Ja, vi elsker dette landet', 'Q208421')"
        )
        conn.commit()
    finally:
        conn.close()


def columns(path, table):
    conn = sqlite3.connect(path)
    try:
        return {row[1] for row in conn.execute(f"PRAGMA table_info({table})")}
    finally:
        conn.close()


def tables(path):
    conn = sqlite3.connect(path)
    try:
        return {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}
    finally:
        conn.close()


def version_rows(path):
    conn = sqlite3.connect(path)
    try:
        return conn.execute("SELECT version FROM schema_version ORDER BY version").fetchall()
    finally:
        conn.close()


def add_flag_url(op):
    add_column_if_missing(op, "countries", sa.Column("flag_url", sa.Text))


def add_flag_url_then_fail(op):
    add_flag_url(op)
    raise RuntimeError("boom")


class TestFreshDatabase:
    """Test schema creation for a new file"""

    @pytest.mark.asyncio
    async def test_new_database_is_current(self, db_path):
        database = await open_database(db_path)
        try:
            assert database.schema_version == CURRENT_SCHEMA_VERSION
            async with database.engine.connect() as conn:
                assert await get_schema_version(conn) == CURRENT_SCHEMA_VERSION
        finally:
            await database.dispose()

        assert db_path.exists()
        assert {"countries", "anthems", "audio_recordings", "jobs", "job_logs", "data_sources", "schema_version"} <= tables(db_path)
        assert {"priority", "download_strategy", "health_check_endpoint"} <= columns(db_path, "data_sources")
        assert "geojson_geometry" in columns(db_path, "countries")

    @pytest.mark.asyncio
    async def test_reopen_is_noop(self, db_path):
        for _ in range(2):
            database = await open_database(db_path)
            assert database.schema_version == CURRENT_SCHEMA_VERSION
            await database.dispose()

        assert version_rows(db_path) == [(CURRENT_SCHEMA_VERSION,)]

    @pytest.mark.asyncio
    async def test_unwritable_location(self, tmp_path):
        blocker = tmp_path / "not-a-directory"
        blocker.write_text("")

        with pytest.raises(DatabaseInitError):
            await open_database(blocker / "data.db")


class TestMigrations:
    """Test upgrades of existing databases"""

    @pytest.mark.asyncio
    async def test_v1_database_is_migrated(self, db_path):
        write_v1_database(db_path)

        database = await open_database(db_path)
        await database.dispose()

        assert database.schema_version == 2
        assert version_rows(db_path) == [(1,), (2,)]
        assert "job_logs" in tables(db_path)
        assert "geojson_geometry" in columns(db_path, "countries")
        assert "rate_limit_per_second" in columns(db_path, "data_sources")

        conn = sqlite3.connect(db_path)
        try:
            assert conn.execute("SELECT name FROM countries WHERE id = 'NOR'").fetchone() == ("Kingdom of Norway",)
            assert conn.execute("SELECT wikidata_id FROM anthems").fetchall() == [("Q208421",)]
        finally:
            conn.close()

    @pytest.mark.asyncio
    async def test_existing_column_is_tolerated(self, db_path):
        write_v1_database(db_path, extra_country_columns=",\n    geojson_geometry TEXT")

        database = await open_database(db_path)
        await database.dispose()

        assert database.schema_version == 2
        assert "geojson_geometry" in columns(db_path, "countries")

    @pytest.mark.asyncio
    async def test_database_without_version_log(self, db_path):
        write_v1_database(db_path, with_version_log=False)

        database = await open_database(db_path)
        await database.dispose()

        assert database.schema_version == 2
        assert version_rows(db_path) == [(1,), (2,)]

    @pytest.mark.asyncio
    async def test_failed_step_rolls_back(self, database):
        failing = MIGRATIONS + (Migration(3, "Add flag url", add_flag_url_then_fail),)

        with pytest.raises(MigrationError) as exc_info:
            await apply_migrations(database.engine, failing)

        assert exc_info.value.context["version"] == 3
        assert isinstance(exc_info.value.original_exception, RuntimeError)
        assert "flag_url" not in columns(database.path, "countries")
        assert version_rows(database.path)[-1] == (2,)

        working = MIGRATIONS + (Migration(3, "Add flag url", add_flag_url),)
        assert await apply_migrations(database.engine, working) == 3
        assert "flag_url" in columns(database.path, "countries")
        assert version_rows(database.path)[-1] == (3,)

    @pytest.mark.asyncio
    async def test_newer_database_is_left_alone(self, database):
        engine = database.engine
        async with engine.begin() as conn:
            await conn.execute(
                sa.text("INSERT INTO schema_version (version, description) VALUES (7, 'future')")
            )

        assert await apply_migrations(engine) == 7

    @pytest.mark.asyncio
    async def test_duplicate_versions_rejected(self, db_path):
        engine = create_engine(db_path)
        try:
            with pytest.raises(ValueError):
                await apply_migrations(engine, MIGRATIONS + (Migration(2, "again", add_flag_url),))
        finally:
            await engine.dispose()

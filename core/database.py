"""
Database handle over an embedded SQLite file, with SQLAlchemy async
"""

from pathlib import Path
from typing import Optional
import logging

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from core.config import settings
from core.exceptions import DatabaseInitError, InitializationError
from core.migrations import ensure_schema

logger = logging.getLogger(__name__)


def get_db_path() -> Path:
    """Well-known database location (~/.local/share/anthemworld/data.db)"""
    return settings.database_path


def create_engine(path: Path, echo: Optional[bool] = None) -> AsyncEngine:
    """
    Create an async engine for a SQLite file.

    pysqlite's implicit transaction handling is switched off so that
    SQLAlchemy emits BEGIN itself; this makes DDL transactional and lets a
    failed migration step roll back completely.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{path}",
        echo=settings.DATABASE_ECHO if echo is None else echo,
        future=True
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


class Database:
    """
    An opened, schema-current database.

    Holds the engine and a session factory; every component that touches
    the database takes its sessions from here.
    """

    def __init__(self, path: Path, engine: AsyncEngine, schema_version: int):
        self.path = path
        self.engine = engine
        self.schema_version = schema_version
        self.sessions = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False
        )

    def session(self) -> AsyncSession:
        """New session; use as `async with database.session() as session:`"""
        return self.sessions()

    async def dispose(self):
        await self.engine.dispose()

    async def __aenter__(self) -> "Database":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.dispose()


async def open_database(path: Optional[Path] = None) -> Database:
    """
    Open (creating if needed) the database and bring its schema up to date.

    Args:
        path: Database file; defaults to get_db_path()

    Raises:
        DatabaseInitError: If the directory or file cannot be created/opened
        MigrationError: If the schema cannot be created or migrated
    """
    db_path = Path(path) if path is not None else get_db_path()

    try:
        db_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise DatabaseInitError(
            "Failed to create database directory",
            context={"database_path": str(db_path)},
            original_exception=e
        )

    engine = create_engine(db_path)

    try:
        version = await ensure_schema(engine)
    except InitializationError:
        await engine.dispose()
        raise
    except Exception as e:
        await engine.dispose()
        raise DatabaseInitError(
            "Failed to open database",
            context={"database_path": str(db_path)},
            original_exception=e
        )

    logger.debug(f"Opened database {db_path} at schema version {version}")
    return Database(db_path, engine, version)

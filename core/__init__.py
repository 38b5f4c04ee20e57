"""
Core utilities and configuration for the anthem reference data store.

This package provides the foundation every other package builds on:

Modules:
    config: Application configuration and environment variable management
    database: SQLite engine, session factory and the open_database entry point
    migrations: Versioned, transactional schema migrations
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration

Usage:
    from core.config import settings
    from core.database import open_database
    from core.exceptions import MigrationError, AllSourcesFailedError
    from core.logging import setup_logging

Example:
    setup_logging()

    async with await open_database() as database:
        async with database.session() as session:
            ...
"""

__all__ = [
    "settings",
    "open_database",
    "setup_logging",
    # Exceptions
    "WorldAnthemError",
    "InitializationError",
    "DatabaseInitError",
    "MigrationError",
    "JobError",
    "JobNotFoundError",
    "JobMetadataError",
    "SourceError",
    "SourceRequestError",
    "SourceDataError",
    "BatchDownloadError",
    "AllSourcesFailedError",
]

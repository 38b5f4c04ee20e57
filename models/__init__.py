"""
SQLAlchemy ORM models for database tables.

This package defines the current (latest version) database schema:

Models:
    base: Base declarative class and shared enums (SourceType, JobStatus, LogLevel)
    schema_version: Log of applied schema versions
    reference_data: Countries, anthems and audio recordings
    job: Job records and their append-only log lines
    data_source: Health/activity mirror of each data source

Database Schema:
    All models inherit from the Base declarative class. The tables are
    created in one shot for a new database; existing databases are brought
    up to date by the migration steps in core.migrations.

Usage:
    from models import Country, Job, JobLog
    from models.base import JobStatus, LogLevel

Relationships:
    - Country → Anthem (one-to-many)
    - Country → AudioRecording (one-to-many)
    - Job → JobLog (one-to-many)
"""

from models.base import Base, SourceType, JobStatus, LogLevel, SourceHealth
from models.schema_version import SchemaVersion
from models.reference_data import Country, Anthem, AudioRecording
from models.job import Job, JobLog
from models.data_source import DataSourceRecord

__all__ = [
    "Base",
    "SourceType",
    "JobStatus",
    "LogLevel",
    "SourceHealth",
    "SchemaVersion",
    "Country",
    "Anthem",
    "AudioRecording",
    "Job",
    "JobLog",
    "DataSourceRecord",
]

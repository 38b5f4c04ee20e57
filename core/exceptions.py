"""
Custom exceptions for the ingestion system with structured error context.

Each exception carries context information so the failure can be logged,
stored on a job record, or surfaced to the user with enough detail to act on.

Exception Hierarchy:
    WorldAnthemError (base)
    ├── InitializationError
    │   ├── DatabaseInitError
    │   └── MigrationError
    ├── JobError
    │   ├── JobNotFoundError
    │   └── JobMetadataError
    ├── SourceError
    │   ├── SourceRequestError
    │   └── SourceDataError
    └── BatchDownloadError
        └── AllSourcesFailedError
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone


class WorldAnthemError(Exception):
    """
    Base exception for all errors raised by this package.

    Attributes:
        message: Human-readable error message
        context: Additional context information (source, job id, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[BaseException] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.now(timezone.utc)

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with the underlying cause."""
        base_msg = self.message

        if self.original_exception:
            base_msg += f": {type(self.original_exception).__name__}: {self.original_exception}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Initialization Errors
# ============================================================================

class InitializationError(WorldAnthemError):
    """Base exception for failures that prevent the database from opening."""
    pass


class DatabaseInitError(InitializationError):
    """
    Raised when the database directory or file cannot be created or opened.

    Context should include:
        - database_path: Path of the database file
    """
    pass


class MigrationError(InitializationError):
    """
    Raised when the initial schema or a migration step fails.

    Context should include:
        - version: Migration version that failed
        - current_version: Version recorded before the step
    """
    pass


# ============================================================================
# Job Errors
# ============================================================================

class JobError(WorldAnthemError):
    """Base exception for job ledger failures."""
    pass


class JobNotFoundError(JobError):
    """Raised when a lifecycle transition targets an unknown job id."""
    pass


class JobMetadataError(JobError):
    """Raised when job metadata cannot be serialized."""
    pass


# ============================================================================
# Source Errors
# ============================================================================

class SourceError(WorldAnthemError):
    """Base exception for data source failures."""
    pass


class SourceRequestError(SourceError):
    """
    Raised when a request to a source endpoint fails.

    Context should include:
        - source_id: Identifier of the data source
        - url: The URL that failed
        - status_code: HTTP status code (if a response was received)
    """
    pass


class SourceDataError(SourceError):
    """Raised when a source returns a payload that cannot be interpreted."""
    pass


# ============================================================================
# Batch Errors
# ============================================================================

class BatchDownloadError(WorldAnthemError):
    """Base exception for batch download outcomes that are fatal to the run."""
    pass


class AllSourcesFailedError(BatchDownloadError):
    """
    Raised when every source in a download batch failed.

    The run summary is attached so callers can still report the tally.
    """

    def __init__(self, message: str, summary, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, context)
        self.summary = summary

from datetime import datetime, timezone
from sqlalchemy.orm import declarative_base
import enum

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp, the form SQLite stores"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ============================================================================
# ENUMS
# ============================================================================

class SourceType(str, enum.Enum):
    """Data source transport kinds"""
    REST_API = "rest_api"
    SPARQL = "sparql"
    STATIC_FILE = "static_file"


class JobStatus(str, enum.Enum):
    """Job lifecycle status"""
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class LogLevel(str, enum.Enum):
    """Job log severity"""
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"


class SourceHealth(str, enum.Enum):
    """Status recorded on a data_sources row"""
    UNKNOWN = "unknown"
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    ERROR = "error"

"""
Pydantic schemas for jobs and job logs
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Any
from datetime import datetime
import json

from models.base import JobStatus, LogLevel


class JobMetadata(BaseModel):
    """
    Free-form job metadata.

    Stored as an opaque JSON blob on the job row; known keys are typed here
    and anything else is carried through as extra fields.
    """
    sources: Optional[Any] = None  # "all" or a list of source ids
    triggered_by: Optional[str] = None

    def to_json(self) -> str:
        """Serialize for storage; raises TypeError/ValueError on unserializable values"""
        return json.dumps(self.model_dump(mode="json", exclude_none=True), sort_keys=True)

    @classmethod
    def from_json(cls, raw: Optional[str]) -> "JobMetadata":
        if not raw:
            return cls()
        try:
            data = json.loads(raw)
        except ValueError:
            return cls()
        if not isinstance(data, dict):
            return cls()
        return cls(**data)

    class Config:
        extra = "allow"


class JobRead(BaseModel):
    """A job as returned by the ledger queries"""
    id: str
    type: str
    status: JobStatus
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    records_processed: int = 0
    records_total: Optional[int] = None
    metadata: JobMetadata = Field(default_factory=JobMetadata)
    created_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, job) -> "JobRead":
        """Build from a models.job.Job row, decoding the metadata blob"""
        return cls(
            id=job.id,
            type=job.type,
            status=job.status,
            started_at=job.started_at,
            completed_at=job.completed_at,
            error_message=job.error_message,
            records_processed=job.records_processed or 0,
            records_total=job.records_total,
            metadata=JobMetadata.from_json(job.job_metadata),
            created_at=job.created_at,
        )


class JobLogRead(BaseModel):
    """One job log line"""
    id: int
    job_id: str
    level: LogLevel
    message: str
    source_id: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class JobsStatus(BaseModel):
    """Aggregate jobs view: RUNNING with the active jobs, or IDLE with the last finished one"""
    state: str
    running: List[JobRead] = Field(default_factory=list)
    last_completed: Optional[JobRead] = None

    @property
    def is_idle(self) -> bool:
        return self.state == "IDLE"

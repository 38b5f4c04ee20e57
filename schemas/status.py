"""
Pydantic schemas for database status and download run summaries
"""

from pydantic import BaseModel, Field
from typing import Optional, List

from models.base import JobStatus
from schemas.jobs import JobsStatus
from schemas.sources import SourceReport


class DataStats(BaseModel):
    """Schema state and entity counts of the local database"""
    database_path: Optional[str] = None
    database_exists: bool = True
    schema_applied: bool = True
    schema_version: int = 0
    schema_up_to_date: bool = False
    country_count: int = 0
    anthem_count: int = 0
    audio_count: int = 0
    job_count: int = 0


class SourceOutcome(BaseModel):
    """Result of one source within a download batch"""
    source_id: str
    name: str
    success: bool
    error: Optional[str] = None
    duration_ms: int = 0


class DownloadSummary(BaseModel):
    """Tally of a download batch"""
    job_id: str
    status: JobStatus
    success_count: int = 0
    failure_count: int = 0
    outcomes: List[SourceOutcome] = Field(default_factory=list)

    @property
    def failed_sources(self) -> List[str]:
        return [o.source_id for o in self.outcomes if not o.success]


class SystemStatus(BaseModel):
    """The aggregate status view"""
    data: DataStats
    sources: List[SourceReport] = Field(default_factory=list)
    jobs: JobsStatus

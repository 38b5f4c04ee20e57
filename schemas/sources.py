"""
Pydantic schemas for data source descriptors, health and stats
"""

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime

from models.base import SourceType


class SourceInfo(BaseModel):
    """Static identity of a data source"""
    id: str
    name: str
    type: SourceType
    url: str


class HealthCheckResult(BaseModel):
    """Outcome of one reachability probe; produced fresh on every check"""
    healthy: bool
    response_time_ms: int = 0
    status_code: Optional[int] = None
    message: str = "OK"


class SourceStats(BaseModel):
    """Data held locally for one source"""
    record_count: int = 0
    storage_bytes: int = 0
    last_updated: Optional[datetime] = None


class SourceReport(BaseModel):
    """Everything the sources view shows for one source"""
    position: int
    info: SourceInfo
    tables: List[str] = Field(default_factory=list)
    schema_exists: bool = False
    schema_version: int = 0
    schema_error: Optional[str] = None
    stats: Optional[SourceStats] = None
    stats_error: Optional[str] = None
    needs_update: bool = False
    health: HealthCheckResult

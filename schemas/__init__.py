"""
Pydantic schemas for data validation and serialization.

These are the typed, in-memory shapes handed across the package
boundary; ORM rows never leave the ingestion layer.

Schemas:
    jobs: Job metadata, job and job log read models, jobs status view
    sources: Source descriptors, health check results, source stats
    status: Database stats, download summaries, aggregate status

Usage:
    from schemas.jobs import JobRead, JobMetadata
    from schemas.sources import HealthCheckResult
    from schemas.status import DownloadSummary
"""

__all__ = [
    "JobMetadata",
    "JobRead",
    "JobLogRead",
    "JobsStatus",
    "SourceInfo",
    "HealthCheckResult",
    "SourceStats",
    "SourceReport",
    "DataStats",
    "SourceOutcome",
    "DownloadSummary",
    "SystemStatus",
]

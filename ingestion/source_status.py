"""
Mirror of data source health and activity into the `data_sources` table
"""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ingestion.base import DataSource
from models.base import SourceHealth, utcnow
from models.data_source import DataSourceRecord
from schemas.sources import HealthCheckResult


async def _get_or_create(session: AsyncSession, source: DataSource) -> DataSourceRecord:
    record = await session.get(DataSourceRecord, source.source_id)
    if record is None:
        record = DataSourceRecord(
            id=source.source_id,
            status=SourceHealth.UNKNOWN.value,
            error_count=0,
            created_at=utcnow()
        )
        session.add(record)

    # Identity lives in code; refresh it on every write
    record.name = source.name
    record.url = source.url
    record.type = source.source_type.value
    record.health_check_endpoint = source.health_check_url or source.url
    record.download_strategy = source.download_strategy
    return record


async def record_health_check(session: AsyncSession, source: DataSource, result: HealthCheckResult) -> DataSourceRecord:
    """Store the outcome of a health check; unhealthy checks count as errors"""
    record = await _get_or_create(session, source)
    record.status = (SourceHealth.HEALTHY if result.healthy else SourceHealth.UNHEALTHY).value
    record.last_check_at = utcnow()
    record.response_time_ms = result.response_time_ms
    if not result.healthy:
        record.error_count = (record.error_count or 0) + 1
    await session.commit()
    return record


async def record_download(
    session: AsyncSession,
    source: DataSource,
    success: bool
) -> DataSourceRecord:
    """Store the outcome of a download attempt"""
    record = await _get_or_create(session, source)
    now = utcnow()
    if success:
        record.status = SourceHealth.HEALTHY.value
        record.last_success_at = now
    else:
        record.status = SourceHealth.ERROR.value
        record.error_count = (record.error_count or 0) + 1
    await session.commit()
    return record


async def get_source_record(session: AsyncSession, source_id: str) -> Optional[DataSourceRecord]:
    return await session.get(DataSourceRecord, source_id)

"""
Status queries: data, sources and jobs.

Everything here reads; the only write is the health check mirror into
`data_sources`. Against a freshly created database every query returns
typed, empty results.
"""

from pathlib import Path
from typing import List, Optional, Sequence
import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import Database
from core.migrations import CURRENT_SCHEMA_VERSION, get_schema_version
from ingestion.base import DataSource
from ingestion.jobs import JobLedger
from ingestion.source_status import record_health_check
from models.job import Job
from models.reference_data import Anthem, AudioRecording, Country
from schemas.jobs import JobsStatus
from schemas.sources import HealthCheckResult, SourceReport
from schemas.status import DataStats, SystemStatus

logger = logging.getLogger(__name__)


async def _count(session: AsyncSession, column) -> int:
    result = await session.execute(select(func.count(column)))
    return result.scalar() or 0


async def get_data_stats(session: AsyncSession, path: Optional[Path] = None) -> DataStats:
    """Schema version and entity counts"""
    version = await get_schema_version(session)

    return DataStats(
        database_path=str(path) if path is not None else None,
        database_exists=path.exists() if path is not None else True,
        schema_applied=version > 0,
        schema_version=version,
        schema_up_to_date=version >= CURRENT_SCHEMA_VERSION,
        country_count=await _count(session, Country.id),
        anthem_count=await _count(session, Anthem.id),
        audio_count=await _count(session, AudioRecording.id),
        job_count=await _count(session, Job.id)
    )


async def _local_report(session: AsyncSession, source: DataSource, report: SourceReport):
    """Fill schema, stats and needs_update; each part is best-effort"""
    try:
        report.schema_exists = await source.schema_exists(session)
    except Exception as e:
        logger.warning(f"Schema check failed for {source.source_id}: {e}")
        report.schema_error = str(e)
        return

    if not report.schema_exists:
        report.needs_update = True
        return

    try:
        report.stats = await source.get_stats(session)
        report.needs_update = await source.needs_update(session)
    except Exception as e:
        logger.warning(f"Stats query failed for {source.source_id}: {e}")
        report.stats_error = str(e)


async def check_sources(
    database: Database,
    sources: Sequence[DataSource],
    check_health: bool = True
) -> List[SourceReport]:
    """
    One report per source, numbered from 1 in registry order.

    Health checks are probed live, never cached, and their results are
    recorded into `data_sources`.
    """
    reports = []

    for position, source in enumerate(sources, start=1):
        if check_health:
            health = await source.health_check()
        else:
            health = HealthCheckResult(healthy=False, message="Not checked")

        report = SourceReport(
            position=position,
            info=source.identify(),
            tables=source.owned_tables(),
            schema_version=source.get_schema_version(),
            health=health
        )

        async with database.session() as session:
            await _local_report(session, source, report)

        if check_health:
            try:
                async with database.session() as session:
                    await record_health_check(session, source, health)
            except Exception as e:
                logger.warning(f"Failed to record health of {source.source_id}: {e}")

        reports.append(report)

    return reports


async def get_jobs_status(ledger: JobLedger) -> JobsStatus:
    """RUNNING with the active jobs, otherwise IDLE with the last finished job"""
    running = await ledger.running_jobs()
    if running:
        return JobsStatus(state="RUNNING", running=running)

    return JobsStatus(state="IDLE", last_completed=await ledger.last_completed_job())


async def collect_status(
    database: Database,
    sources: Sequence[DataSource],
    ledger: Optional[JobLedger] = None,
    check_health: bool = True
) -> SystemStatus:
    ledger = ledger or JobLedger(database.sessions)

    async with database.session() as session:
        data = await get_data_stats(session, database.path)

    return SystemStatus(
        data=data,
        sources=await check_sources(database, sources, check_health=check_health),
        jobs=await get_jobs_status(ledger)
    )

"""
Script to print data, source and job status
"""

import asyncio
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.database import open_database
from core.exceptions import InitializationError
from core.logging import setup_logging
from ingestion.registry import build_default_sources
from ingestion.status import collect_status
from schemas.status import SystemStatus

setup_logging()
logger = logging.getLogger(__name__)


def render(status: SystemStatus) -> str:
    data = status.data
    lines = [
        f"Database: {data.database_path}",
        f"Schema version: {data.schema_version}" + ("" if data.schema_up_to_date else " (outdated)"),
        f"Countries: {data.country_count}  Anthems: {data.anthem_count}  "
        f"Audio: {data.audio_count}  Jobs: {data.job_count}",
        "",
        "Sources:",
    ]

    for report in status.sources:
        health = "healthy" if report.health.healthy else f"unhealthy ({report.health.message})"
        records = report.stats.record_count if report.stats else "-"
        lines.append(
            f"  {report.position}. {report.info.name} [{report.info.id}] "
            f"{health}, {report.health.response_time_ms} ms, records: {records}"
            + (", needs update" if report.needs_update else "")
        )

    lines.append("")
    jobs = status.jobs
    if jobs.is_idle:
        last = jobs.last_completed
        if last is None:
            lines.append("Jobs: IDLE (no jobs run yet)")
        else:
            lines.append(f"Jobs: IDLE, last job {last.id} {last.status.value} at {last.completed_at}")
    else:
        lines.append(f"Jobs: RUNNING ({len(jobs.running)})")
        for job in jobs.running:
            lines.append(
                f"  {job.id} {job.type} {job.records_processed}/{job.records_total or '?'} "
                f"since {job.started_at}"
            )

    return "\n".join(lines)


async def show_status():
    database = await open_database()
    try:
        status = await collect_status(database, build_default_sources())
    finally:
        await database.dispose()
    print(render(status))


if __name__ == "__main__":
    try:
        asyncio.run(show_status())
    except InitializationError as e:
        logger.error(f"Database initialization failed: {e}")
        sys.exit(1)

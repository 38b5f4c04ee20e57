"""
Script to download reference data from all (or selected) sources

Usage:
    python scripts/run_download.py [SOURCE_ID ...]
"""

import asyncio
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.database import open_database
from core.exceptions import AllSourcesFailedError, InitializationError
from core.logging import setup_logging
from ingestion.registry import build_default_sources, select_sources
from ingestion.runner import DownloadRunner
from schemas.jobs import JobMetadata

setup_logging()
logger = logging.getLogger(__name__)


async def run_download(selected) -> int:
    """Run one download job; returns the process exit code"""
    try:
        sources = select_sources(build_default_sources(), selected)
    except ValueError as e:
        logger.error(str(e))
        return 2

    database = await open_database()
    try:
        runner = DownloadRunner(database, sources)
        metadata = JobMetadata(
            sources=[s.source_id for s in sources] if selected else "all",
            triggered_by="cli"
        )

        try:
            summary = await runner.run(metadata)
        except AllSourcesFailedError as e:
            for outcome in e.summary.outcomes:
                logger.error(f"  {outcome.source_id}: {outcome.error}")
            logger.error(f"Download job {e.summary.job_id} failed: {e.message}")
            return 1

        for outcome in summary.outcomes:
            state = "ok" if outcome.success else f"FAILED ({outcome.error})"
            logger.info(f"  {outcome.source_id}: {state} in {outcome.duration_ms} ms")
        logger.info(
            f"Download job {summary.job_id} completed: "
            f"{summary.success_count} succeeded, {summary.failure_count} failed"
        )
        return 0

    finally:
        await database.dispose()


if __name__ == "__main__":
    try:
        exit_code = asyncio.run(run_download(sys.argv[1:]))
    except InitializationError as e:
        logger.error(f"Database initialization failed: {e}")
        exit_code = 1
    except KeyboardInterrupt:
        logger.warning("Download interrupted")
        exit_code = 130
    sys.exit(exit_code)

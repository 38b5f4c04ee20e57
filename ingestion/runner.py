"""
Download Runner - runs a batch of source downloads as one tracked job.

This module provides the batch orchestration with:
- One `data-download` job per batch, logged per source
- Per-source failure isolation (one broken source never stops the others)
- Per-source timeout and a fresh session per source
- Outcome mirroring into `data_sources`
- Cancellation that leaves the job FAILED rather than RUNNING
"""

from typing import Any, Dict, Optional, Sequence, Union
import asyncio
import logging
import time

from core.config import settings
from core.database import Database
from core.exceptions import AllSourcesFailedError
from ingestion.base import DataSource, source_ids
from ingestion.jobs import JobLedger, JobLogger
from ingestion.source_status import record_download
from models.base import JobStatus
from schemas.jobs import JobMetadata
from schemas.status import DownloadSummary, SourceOutcome

logger = logging.getLogger(__name__)

JOB_TYPE = "data-download"


class DownloadRunner:
    """
    Download orchestrator

    Responsibilities:
    - Create, start and finish the job
    - Run each source sequentially in registry order
    - Recover per-source errors and tally outcomes
    - Decide the job's final status
    """

    def __init__(
        self,
        database: Database,
        sources: Sequence[DataSource],
        ledger: Optional[JobLedger] = None,
        download_timeout: Optional[float] = None
    ):
        self.database = database
        self.sources = tuple(sources)
        self.ledger = ledger or JobLedger(database.sessions)
        self.download_timeout = (
            download_timeout if download_timeout is not None else settings.DOWNLOAD_TIMEOUT
        )

    async def run(self, metadata: Optional[Union[JobMetadata, Dict[str, Any]]] = None) -> DownloadSummary:
        """
        Download every source under a single job.

        Returns:
            DownloadSummary with per-source outcomes; status is COMPLETED when
            at least one source succeeded (or there were no sources)

        Raises:
            AllSourcesFailedError: If every source failed; the job is FAILED
                and the summary is attached to the exception
            JobMetadataError: If metadata cannot be serialized
            asyncio.CancelledError: If the run is cancelled; the job is FAILED
        """
        if metadata is None:
            metadata = JobMetadata(sources=source_ids(self.sources))

        job_id = await self.ledger.create_job(JOB_TYPE, metadata)
        job_logger = self.ledger.logger(job_id)
        summary = DownloadSummary(job_id=job_id, status=JobStatus.RUNNING)

        try:
            await self.ledger.start_job(job_id)
            await self.ledger.update_progress(job_id, 0, records_total=len(self.sources))
            await job_logger.info("Starting download of %d sources", len(self.sources))

            for index, source in enumerate(self.sources, start=1):
                outcome = await self._run_source(source, job_logger)
                summary.outcomes.append(outcome)
                if outcome.success:
                    summary.success_count += 1
                else:
                    summary.failure_count += 1
                await self.ledger.update_progress(job_id, index)

        except asyncio.CancelledError:
            logger.warning(f"Download job {job_id} cancelled")
            await self._abort(job_id, job_logger, "Download cancelled")
            raise

        except Exception as e:
            logger.exception(f"Unexpected error in download job {job_id}")
            await self._abort(job_id, job_logger, f"Download aborted: {type(e).__name__}: {e}")
            raise

        total = len(self.sources)

        if total and summary.failure_count == total:
            message = f"All {total} sources failed"
            await job_logger.error(message)
            await self.ledger.fail_job(job_id, message)
            summary.status = JobStatus.FAILED
            raise AllSourcesFailedError(
                message,
                summary=summary,
                context={"job_id": job_id, "failed_sources": summary.failed_sources}
            )

        if summary.failure_count:
            await job_logger.warn(
                "Completed with failures: %d succeeded, %d failed (%s)",
                summary.success_count,
                summary.failure_count,
                ", ".join(summary.failed_sources)
            )
        else:
            await job_logger.info("All %d sources downloaded successfully", summary.success_count)

        await self.ledger.complete_job(job_id)
        summary.status = JobStatus.COMPLETED
        return summary

    async def _run_source(self, source: DataSource, job_logger: JobLogger) -> SourceOutcome:
        """Download one source; any non-cancellation error becomes a failed outcome"""
        source_logger = job_logger.for_source(source.source_id)
        await source_logger.info("Downloading %s", source.name)

        started = time.perf_counter()
        error: Optional[str] = None

        try:
            async with self.database.session() as session:
                await asyncio.wait_for(
                    source.download(session, source_logger),
                    timeout=self.download_timeout
                )
        except asyncio.TimeoutError:
            error = f"Timed out after {self.download_timeout:g}s"
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = str(e) or type(e).__name__

        duration_ms = int((time.perf_counter() - started) * 1000)

        if error is None:
            await source_logger.info("Downloaded %s in %d ms", source.name, duration_ms)
        else:
            await source_logger.error("Failed to download %s: %s", source.name, error)

        try:
            async with self.database.session() as session:
                await record_download(session, source, error is None)
        except Exception as e:
            logger.warning(f"Failed to record download outcome of {source.source_id}: {e}")

        return SourceOutcome(
            source_id=source.source_id,
            name=source.name,
            success=error is None,
            error=error,
            duration_ms=duration_ms
        )

    async def _abort(self, job_id: str, job_logger: JobLogger, message: str):
        """Best-effort FAILED transition; the original error is what propagates"""
        try:
            await job_logger.error(message)
            await self.ledger.fail_job(job_id, message)
        except Exception as e:
            logger.error(f"Failed to mark job {job_id} as failed: {e}")

"""
Job ledger: persisted job records, lifecycle transitions and per-job logs.

The ledger is the only writer of `jobs` rows. Every operation runs in its
own short session and commits before returning, so job state is durable
even when the work it tracks later fails or is cancelled.
"""

from typing import Any, Dict, List, Optional, Union
import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from core.exceptions import JobMetadataError, JobNotFoundError
from models.base import JobStatus, LogLevel, utcnow
from models.job import Job, JobLog
from schemas.jobs import JobLogRead, JobMetadata, JobRead

logger = logging.getLogger(__name__)

_PY_LEVELS = {
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


class JobLogger:
    """
    Leveled logger that appends rows to `job_logs` for one job.

    Messages accept %-style arguments like the stdlib logger. Every line is
    mirrored to the `ingestion.jobs` logger. Failing to persist a line is
    reported there and never raised: job logs are a side channel and must
    not break the work they describe.
    """

    def __init__(
        self,
        sessions: async_sessionmaker,
        job_id: str,
        source_id: Optional[str] = None
    ):
        self._sessions = sessions
        self.job_id = job_id
        self.source_id = source_id

    def for_source(self, source_id: str) -> "JobLogger":
        """Logger for the same job whose lines are tagged with `source_id`"""
        return JobLogger(self._sessions, self.job_id, source_id)

    async def info(self, message: str, *args: Any, source_id: Optional[str] = None):
        await self._write(LogLevel.INFO, message, args, source_id)

    async def warn(self, message: str, *args: Any, source_id: Optional[str] = None):
        await self._write(LogLevel.WARN, message, args, source_id)

    async def error(self, message: str, *args: Any, source_id: Optional[str] = None):
        await self._write(LogLevel.ERROR, message, args, source_id)

    async def _write(self, level: LogLevel, message: str, args: tuple, source_id: Optional[str]):
        try:
            text = message % args if args else message
        except (TypeError, ValueError):
            text = f"{message} {args!r}"

        source = source_id or self.source_id
        logger.log(_PY_LEVELS[level], f"[job {self.job_id}]{f' [{source}]' if source else ''} {text}")

        try:
            async with self._sessions() as session:
                session.add(JobLog(
                    job_id=self.job_id,
                    level=level,
                    message=text,
                    source_id=source,
                    created_at=utcnow()
                ))
                await session.commit()
        except Exception as e:
            logger.warning(f"Failed to persist job log for {self.job_id}: {e}")


class JobLedger:
    """
    Creates jobs and drives them through PENDING -> RUNNING -> COMPLETED | FAILED.

    Callers own the lifecycle order: complete_job and fail_job overwrite
    completed_at if called again, so each job must be finished exactly once.
    """

    def __init__(self, sessions: async_sessionmaker):
        self._sessions = sessions

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def create_job(
        self,
        job_type: str,
        metadata: Optional[Union[JobMetadata, Dict[str, Any]]] = None
    ) -> str:
        """
        Insert a PENDING job.

        Returns:
            The new job id

        Raises:
            JobMetadataError: If metadata cannot be serialized
        """
        try:
            if metadata is None:
                metadata = JobMetadata()
            elif not isinstance(metadata, JobMetadata):
                metadata = JobMetadata(**metadata)
            payload = metadata.to_json()
        except (TypeError, ValueError) as e:
            raise JobMetadataError(
                "Failed to serialize job metadata",
                context={"job_type": job_type},
                original_exception=e
            )

        job_id = str(uuid.uuid4())
        async with self._sessions() as session:
            session.add(Job(
                id=job_id,
                type=job_type,
                status=JobStatus.PENDING,
                records_processed=0,
                job_metadata=payload,
                created_at=utcnow()
            ))
            await session.commit()

        logger.info(f"Created job {job_id} ({job_type})")
        return job_id

    async def start_job(self, job_id: str):
        """Mark a job RUNNING and stamp started_at"""
        await self._update(job_id, status=JobStatus.RUNNING, started_at=utcnow())

    async def complete_job(self, job_id: str):
        """Mark a job COMPLETED and stamp completed_at"""
        await self._update(job_id, status=JobStatus.COMPLETED, completed_at=utcnow())

    async def fail_job(self, job_id: str, message: str):
        """Mark a job FAILED, stamping completed_at and the error message"""
        await self._update(
            job_id,
            status=JobStatus.FAILED,
            completed_at=utcnow(),
            error_message=message
        )

    async def update_progress(
        self,
        job_id: str,
        records_processed: int,
        records_total: Optional[int] = None
    ):
        values: Dict[str, Any] = {"records_processed": records_processed}
        if records_total is not None:
            values["records_total"] = records_total
        await self._update(job_id, **values)

    def logger(self, job_id: str) -> JobLogger:
        return JobLogger(self._sessions, job_id)

    async def _update(self, job_id: str, **values: Any):
        async with self._sessions() as session:
            job = await session.get(Job, job_id)
            if job is None:
                raise JobNotFoundError(f"Job not found: {job_id}", context={"job_id": job_id})

            new_status = values.get("status")
            if new_status is not None and job.status.is_terminal:
                logger.warning(f"Job {job_id} is already {job.status.value}; setting {new_status.value}")

            for key, value in values.items():
                setattr(job, key, value)
            await session.commit()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_job(self, job_id: str) -> Optional[JobRead]:
        async with self._sessions() as session:
            job = await session.get(Job, job_id)
            return JobRead.from_model(job) if job else None

    async def running_jobs(self) -> List[JobRead]:
        """RUNNING jobs, most recently started first"""
        async with self._sessions() as session:
            result = await session.execute(
                select(Job)
                .where(Job.status == JobStatus.RUNNING)
                .order_by(Job.started_at.desc(), Job.created_at.desc())
            )
            return [JobRead.from_model(job) for job in result.scalars().all()]

    async def last_completed_job(self) -> Optional[JobRead]:
        """Most recently finished job (COMPLETED or FAILED), or None if no job has finished"""
        async with self._sessions() as session:
            result = await session.execute(
                select(Job)
                .where(Job.status.in_([JobStatus.COMPLETED, JobStatus.FAILED]))
                .order_by(Job.completed_at.desc(), Job.created_at.desc())
                .limit(1)
            )
            job = result.scalar_one_or_none()
            return JobRead.from_model(job) if job else None

    async def get_logs(self, job_id: str, level: Optional[LogLevel] = None) -> List[JobLogRead]:
        """Log lines of a job in insertion order"""
        async with self._sessions() as session:
            query = select(JobLog).where(JobLog.job_id == job_id)
            if level is not None:
                query = query.where(JobLog.level == level)
            result = await session.execute(query.order_by(JobLog.id))
            return [JobLogRead.model_validate(entry) for entry in result.scalars().all()]

from sqlalchemy import Column, String, Integer, DateTime, Text, Enum, ForeignKey, Index
from sqlalchemy.orm import relationship
from models.base import Base, JobStatus, LogLevel, utcnow


class Job(Base):
    """
    One tracked unit of batch work.

    Purpose:
    - Audit trail of every download run
    - Progress reporting while a run is active
    - Error tracking after a run has failed

    Lifecycle:
    PENDING -> RUNNING -> COMPLETED | FAILED. completed_at and error_message
    are only written on the terminal transition.
    """
    __tablename__ = "jobs"

    id = Column(String, primary_key=True)
    type = Column(Text, nullable=False)
    status = Column(Enum(JobStatus, native_enum=False, length=16), nullable=False, default=JobStatus.PENDING)

    # Timestamps
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    # Error tracking
    error_message = Column(Text, nullable=True)

    # Progress
    records_processed = Column(Integer, default=0)
    records_total = Column(Integer, nullable=True)

    # JSON-serialized JobMetadata
    job_metadata = Column("metadata", Text, nullable=True)

    created_at = Column(DateTime, default=utcnow)

    logs = relationship("JobLog", back_populates="job", order_by="JobLog.id")

    __table_args__ = (
        Index("idx_jobs_status", "status"),
        Index("idx_jobs_type", "type"),
    )


class JobLog(Base):
    """
    Append-only log line attached to a job.

    Added in schema version 2.
    """
    __tablename__ = "job_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(Text, ForeignKey("jobs.id"), nullable=False)
    level = Column(Enum(LogLevel, native_enum=False, length=8), nullable=False)
    message = Column(Text, nullable=False)
    source_id = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    job = relationship("Job", back_populates="logs")

    __table_args__ = (
        Index("idx_job_logs_job_id", "job_id"),
        Index("idx_job_logs_level", "level"),
    )

"""
Data source downloads, job tracking and status reporting.

Modules:
    base: Abstract base class for data sources (identity, health, download)
    registry: The ordered set of known sources
    jobs: Job ledger and per-job logger
    runner: Download orchestrator running a batch of sources as one job
    source_status: Health and activity mirror in `data_sources`
    status: Data, sources and jobs status queries

Subpackages:
    sources: Concrete sources (REST Countries, Natural Earth, Wikidata, Commons)

Usage:
    from core.database import open_database
    from ingestion.registry import build_default_sources
    from ingestion.runner import DownloadRunner

Example:
    database = await open_database()
    try:
        summary = await DownloadRunner(database, build_default_sources()).run()
        print(f"{summary.success_count} sources downloaded")
    finally:
        await database.dispose()

Error Handling:
    Per-source errors are recovered by the runner and recorded on the job.
    Only a batch where every source failed raises (AllSourcesFailedError).
"""

__all__ = [
    "DataSource",
    "DownloadRunner",
    "JobLedger",
    "JobLogger",
    "build_default_sources",
    "select_sources",
    "collect_status",
]

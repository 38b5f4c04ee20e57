"""
Integration tests for the download runner
"""

import asyncio
from datetime import timedelta

import httpx
import pytest
from sqlalchemy import func, select

from core.exceptions import AllSourcesFailedError
from ingestion.registry import build_default_sources
from ingestion.runner import JOB_TYPE, DownloadRunner
from ingestion.source_status import get_source_record
from ingestion.sources import CommonsAudioSource, NaturalEarthSource
from models.base import JobStatus, LogLevel, SourceHealth, utcnow
from models.reference_data import Anthem, AudioRecording, Country


@pytest.mark.asyncio
async def test_all_sources_succeed(database, ledger, make_source):
    sources = [make_source("alpha"), make_source("beta")]

    summary = await DownloadRunner(database, sources, ledger).run()

    assert summary.status == JobStatus.COMPLETED
    assert summary.success_count == 2
    assert summary.failure_count == 0
    assert [o.source_id for o in summary.outcomes] == ["alpha", "beta"]

    job = await ledger.get_job(summary.job_id)
    assert job.type == JOB_TYPE
    assert job.status == JobStatus.COMPLETED
    assert job.records_total == 2
    assert job.records_processed == 2
    assert job.metadata.sources == ["alpha", "beta"]

    assert await ledger.get_logs(summary.job_id, level=LogLevel.WARN) == []
    assert await ledger.get_logs(summary.job_id, level=LogLevel.ERROR) == []


@pytest.mark.asyncio
async def test_partial_failure_completes_with_warning(database, ledger, make_source):
    """
    One broken source:
    1. The remaining sources still run
    2. The job is COMPLETED, not FAILED
    3. A WARN line carries the tally
    """
    sources = [make_source("alpha"), make_source("broken", outcome="fail"), make_source("gamma")]

    summary = await DownloadRunner(database, sources, ledger).run()

    assert summary.status == JobStatus.COMPLETED
    assert summary.success_count == 2
    assert summary.failure_count == 1
    assert summary.failed_sources == ["broken"]
    assert all(source.download_calls == 1 for source in sources)

    broken = summary.outcomes[1]
    assert broken.success is False
    assert "broken is unreachable" in broken.error

    job = await ledger.get_job(summary.job_id)
    assert job.status == JobStatus.COMPLETED
    assert job.error_message is None
    assert job.records_processed == 3

    warnings = await ledger.get_logs(summary.job_id, level=LogLevel.WARN)
    assert len(warnings) == 1
    assert "2 succeeded, 1 failed" in warnings[0].message

    errors = await ledger.get_logs(summary.job_id, level=LogLevel.ERROR)
    assert [log.source_id for log in errors] == ["broken"]


@pytest.mark.asyncio
async def test_all_sources_fail(database, ledger, make_source):
    sources = [make_source(f"down-{i}", outcome="fail") for i in range(3)]

    with pytest.raises(AllSourcesFailedError) as exc_info:
        await DownloadRunner(database, sources, ledger).run()

    summary = exc_info.value.summary
    assert summary.status == JobStatus.FAILED
    assert summary.failure_count == 3
    assert exc_info.value.message == "All 3 sources failed"

    job = await ledger.get_job(summary.job_id)
    assert job.status == JobStatus.FAILED
    assert job.error_message == "All 3 sources failed"
    assert job.completed_at is not None

    errors = await ledger.get_logs(summary.job_id, level=LogLevel.ERROR)
    assert errors[-1].message == "All 3 sources failed"


@pytest.mark.asyncio
async def test_no_sources(database, ledger):
    summary = await DownloadRunner(database, [], ledger).run()

    assert summary.status == JobStatus.COMPLETED
    assert summary.outcomes == []


@pytest.mark.asyncio
async def test_source_timeout_is_a_failure(database, ledger, make_source):
    sources = [make_source("slow", delay=5), make_source("fast")]

    summary = await DownloadRunner(database, sources, ledger, download_timeout=0.05).run()

    assert summary.status == JobStatus.COMPLETED
    assert summary.failed_sources == ["slow"]
    assert summary.outcomes[0].error.startswith("Timed out")


@pytest.mark.asyncio
async def test_cancellation_marks_job_failed(database, ledger, make_source):
    slow = make_source("slow", delay=30)
    task = asyncio.create_task(DownloadRunner(database, [make_source("first"), slow], ledger).run())

    await asyncio.wait_for(slow.started.wait(), timeout=5)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    assert await ledger.running_jobs() == []

    job = await ledger.last_completed_job()
    assert job.status == JobStatus.FAILED
    assert job.error_message == "Download cancelled"
    assert job.records_processed == 1


@pytest.mark.asyncio
async def test_outcomes_recorded_in_data_sources(database, ledger, make_source):
    sources = [make_source("alpha"), make_source("broken", outcome="fail")]

    await DownloadRunner(database, sources, ledger).run()
    await DownloadRunner(database, sources, ledger).run()

    async with database.session() as session:
        alpha = await get_source_record(session, "alpha")
        broken = await get_source_record(session, "broken")

    assert alpha.status == SourceHealth.HEALTHY.value
    assert alpha.last_success_at is not None
    assert alpha.error_count == 0

    assert broken.status == SourceHealth.ERROR.value
    assert broken.last_success_at is None
    assert broken.error_count == 2
    assert broken.download_strategy == "api"
    assert broken.health_check_endpoint == "http://broken.test/data"


GEOMETRY = {"type": "Polygon", "coordinates": [[[5, 58], [31, 70], [5, 70], [5, 58]]]}


def registry_transport():
    """One transport answering for every default source's endpoints"""
    def handler(request):
        host = request.url.host
        if host == "restcountries.com":
            return httpx.Response(200, json=[
                {"name": {"common": "Norway", "official": "Kingdom of Norway"}, "cca2": "NO", "cca3": "NOR"},
                {"name": {"common": "France", "official": "French Republic"}, "cca2": "FR", "cca3": "FRA"},
            ])
        if host == "raw.githubusercontent.com":
            return httpx.Response(200, json={"type": "FeatureCollection", "features": [
                {"type": "Feature", "properties": {"ISO_A3": "NOR"}, "geometry": GEOMETRY},
                {"type": "Feature", "properties": {"ISO_A3": "ATF"}, "geometry": GEOMETRY},
            ]})
        if host == "query.wikidata.org":
            return httpx.Response(200, json={"results": {"bindings": [
                {"iso3": {"value": "NOR"}, "anthem": {"value": "http://www.wikidata.org/entity/Q208421"},
                 "anthemLabel": {"value": "Ja, vi elsker dette landet"}},
                {"iso3": {"value": "XXX"}, "anthem": {"value": "http://www.wikidata.org/entity/Q1"},
                 "anthemLabel": {"value": "Nowhere Song"}},
            ]}})
        if host == "www.wikidata.org":
            return httpx.Response(200, json={"entities": {"Q208421": {"claims": {"P51": [
                {"mainsnak": {"datavalue": {"value": "Ja_vi_elsker.ogg"}}},
                {"mainsnak": {"datavalue": {"value": "Missing.ogg"}}},
            ]}}}})
        if host == "commons.wikimedia.org":
            return httpx.Response(200, json={"query": {"pages": {
                "1": {"title": "File:Ja vi elsker.ogg", "imageinfo": [{
                    "url": "https://upload.wikimedia.org/ja.ogg",
                    "size": 2048,
                    "mime": "application/ogg",
                }]},
                "-1": {"title": "File:Missing.ogg", "missing": ""},
            }}})
        return httpx.Response(404)

    return httpx.MockTransport(handler)


async def table_count(database, column):
    async with database.session() as session:
        result = await session.execute(select(func.count(column)))
        return result.scalar()


@pytest.mark.asyncio
async def test_default_sources_end_to_end(database, ledger):
    """
    All four real sources in one run:
    1. Each source reads, logs and writes through the same database file
    2. Every source succeeds and stores its rows
    3. Each source's WARN line about skipped records is kept
    """
    sources = build_default_sources(transport=registry_transport(), batch_size=1)

    summary = await DownloadRunner(database, sources, ledger, download_timeout=30).run()

    assert [(o.source_id, o.success, o.error) for o in summary.outcomes] == [
        ("restcountries", True, None),
        ("natural-earth", True, None),
        ("wikidata", True, None),
        ("wikimedia-commons", True, None),
    ]
    assert summary.status == JobStatus.COMPLETED
    assert summary.success_count == 4

    assert await table_count(database, Country.id) == 2
    assert await table_count(database, Anthem.id) == 1
    assert await table_count(database, AudioRecording.id) == 1

    async with database.session() as session:
        norway = await session.get(Country, "NOR")
        assert norway.geojson_geometry is not None

    warnings = await ledger.get_logs(summary.job_id, level=LogLevel.WARN)
    assert {log.source_id for log in warnings} == {"natural-earth", "wikidata", "wikimedia-commons"}
    assert any("did not match" in log.message for log in warnings)
    assert any("Skipped 1 anthems" in log.message for log in warnings)
    assert any("could not be resolved" in log.message for log in warnings)


@pytest.mark.asyncio
async def test_read_then_log_sources_keep_their_writes(database, ledger, seed_countries):
    await seed_countries("NOR")
    transport = registry_transport()
    sources = [NaturalEarthSource(transport=transport), CommonsAudioSource(transport=transport)]

    summary = await DownloadRunner(database, sources, ledger, download_timeout=30).run()

    assert summary.failed_sources == []

    async with database.session() as session:
        norway = await session.get(Country, "NOR")
        assert norway.geojson_geometry is not None

    warnings = await ledger.get_logs(summary.job_id, level=LogLevel.WARN)
    assert [log.source_id for log in warnings] == ["natural-earth", "wikimedia-commons"]


@pytest.mark.asyncio
async def test_redownload_refreshes_staleness(database, ledger, seed_countries):
    await seed_countries("NOR")
    aged = utcnow() - timedelta(days=90)
    async with database.session() as session:
        session.add(Anthem(country_id="NOR", name="Ja, vi elsker", wikidata_id="Q208421"))
        session.add(AudioRecording(
            id="commons:Ja vi elsker.ogg",
            country_id="NOR",
            title="Ja vi elsker.ogg",
            url="https://upload.wikimedia.org/ja.ogg",
            created_at=aged
        ))
        await session.commit()

    source = CommonsAudioSource(transport=registry_transport())
    async with database.session() as session:
        assert await source.needs_update(session) is True

    await DownloadRunner(database, [source], ledger, download_timeout=30).run()

    async with database.session() as session:
        assert await source.needs_update(session) is False
        assert await table_count(database, AudioRecording.id) == 1

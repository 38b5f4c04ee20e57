"""
Pytest configuration and fixtures
"""

import asyncio
from typing import AsyncGenerator, Optional

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import func, select

from core.database import Database, open_database
from core.exceptions import SourceRequestError
from ingestion.base import DataSource
from ingestion.jobs import JobLedger
from models.base import SourceType
from models.reference_data import Country
from schemas.sources import SourceStats


def ok_transport() -> httpx.MockTransport:
    """Transport answering every request with 200 and an empty JSON object"""
    return httpx.MockTransport(lambda request: httpx.Response(200, json={}))


class FakeSource(DataSource):
    """
    Source double with a configurable download outcome.

    outcome: "ok" writes one log line, "fail" raises SourceRequestError,
    "slow" sleeps for `delay` seconds first.
    """

    source_type = SourceType.REST_API
    download_strategy = "api"
    tables = ("countries",)

    def __init__(self, source_id: str, outcome: str = "ok", delay: float = 0.0, **kwargs):
        kwargs.setdefault("transport", ok_transport())
        super().__init__(**kwargs)
        self.source_id = source_id
        self.name = f"Fake {source_id}"
        self.url = f"http://{source_id}.test/data"
        self.outcome = outcome
        self.delay = delay
        self.download_calls = 0
        self.started = asyncio.Event()

    async def get_stats(self, session) -> SourceStats:
        result = await session.execute(select(func.count(Country.id)))
        return SourceStats(record_count=result.scalar() or 0)

    async def download(self, session, job_logger) -> None:
        self.download_calls += 1
        self.started.set()

        if self.delay:
            await asyncio.sleep(self.delay)

        if self.outcome == "fail":
            raise SourceRequestError(
                f"{self.source_id} is unreachable",
                context={"source_id": self.source_id}
            )

        await job_logger.info("Fake download of %s done", self.source_id)


@pytest.fixture
def make_source():
    """Factory for FakeSource instances"""
    def _make(source_id: str, outcome: str = "ok", delay: float = 0.0, **kwargs) -> FakeSource:
        return FakeSource(source_id, outcome=outcome, delay=delay, **kwargs)
    return _make


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "anthemworld" / "data.db"


@pytest_asyncio.fixture(scope="function")
async def database(db_path) -> AsyncGenerator[Database, None]:
    """Freshly created database file, disposed after the test"""
    db = await open_database(db_path)
    yield db
    await db.dispose()


@pytest_asyncio.fixture(scope="function")
async def ledger(database) -> JobLedger:
    return JobLedger(database.sessions)


@pytest_asyncio.fixture(scope="function")
async def job_logger(ledger):
    """JobLogger bound to a fresh job"""
    job_id = await ledger.create_job("test")
    return ledger.logger(job_id)


@pytest.fixture
def seed_countries(database):
    """Insert country rows by alpha-3 code"""
    async def _seed(*codes: str, name: Optional[str] = None):
        async with database.session() as session:
            for code in codes:
                session.add(Country(id=code, name=name or f"Country {code}", iso_alpha3=code))
            await session.commit()
    return _seed

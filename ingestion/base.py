"""
Abstract base class for data sources.

A data source is one external origin of reference data. Every source, whatever
its transport, answers the same questions:

- who it is (identify)
- which tables it fills and whether they exist (owned_tables, schema_exists)
- what is stored locally and whether it is stale (get_stats, needs_update)
- whether its endpoint is reachable (health_check)
- how to fetch and persist its data (download)
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple
import asyncio
import logging
import time

import httpx
from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.exceptions import SourceDataError, SourceRequestError
from models.base import SourceType, utcnow
from models.data_source import DataSourceRecord
from schemas.sources import HealthCheckResult, SourceInfo, SourceStats

logger = logging.getLogger(__name__)


def chunked(items: Sequence[Any], size: int) -> Iterator[Sequence[Any]]:
    """Split a sequence into consecutive slices of at most `size` items"""
    size = max(1, size)
    for start in range(0, len(items), size):
        yield items[start:start + size]


class DataSource(ABC):
    """
    Abstract base class for all data sources.

    Subclasses declare their identity as class attributes and implement
    get_stats and download. The registry holds one instance per source.

    Responsibilities:
    - Reachability probing that never raises
    - Schema ownership checks
    - Fetch-and-persist, committing per batch so a cancelled or failed
      download never leaves a half-written entity behind
    """

    source_id: str = ""
    name: str = ""
    source_type: SourceType = SourceType.REST_API
    url: str = ""

    # Probe target; defaults to `url`
    health_check_url: Optional[str] = None
    health_check_method: str = "GET"
    health_check_params: Optional[Dict[str, str]] = None

    download_strategy: str = "api"
    tables: Tuple[str, ...] = ()
    # (table, columns) pairs that must exist beyond the owned tables
    required_columns: Tuple[Tuple[str, Tuple[str, ...]], ...] = ()
    schema_version: int = 1
    update_interval: timedelta = timedelta(days=30)

    def __init__(
        self,
        timeout: Optional[float] = None,
        health_check_timeout: Optional[float] = None,
        batch_size: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.timeout = timeout if timeout is not None else settings.HTTP_TIMEOUT
        self.health_check_timeout = (
            health_check_timeout if health_check_timeout is not None else settings.HEALTH_CHECK_TIMEOUT
        )
        self.batch_size = batch_size or settings.DOWNLOAD_BATCH_SIZE
        self.transport = transport

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.source_id}>"

    # ------------------------------------------------------------------
    # Identity and schema ownership
    # ------------------------------------------------------------------

    def identify(self) -> SourceInfo:
        return SourceInfo(
            id=self.source_id,
            name=self.name,
            type=self.source_type,
            url=self.url
        )

    def owned_tables(self) -> List[str]:
        return list(self.tables)

    def get_schema_version(self) -> int:
        """Version of this source's own schema contribution"""
        return self.schema_version

    async def schema_exists(self, session: AsyncSession) -> bool:
        """True when every owned table (and required column) is present"""
        tables = self.owned_tables()
        required = self.required_columns

        def _check(sync_conn) -> bool:
            inspector = inspect(sync_conn)
            for table in tables:
                if not inspector.has_table(table):
                    return False
            for table, columns in required:
                existing = {col["name"] for col in inspector.get_columns(table)}
                if not set(columns) <= existing:
                    return False
            return True

        conn = await session.connection()
        return await conn.run_sync(_check)

    # ------------------------------------------------------------------
    # Local data
    # ------------------------------------------------------------------

    @abstractmethod
    async def get_stats(self, session: AsyncSession) -> SourceStats:
        """Record count, approximate storage and last update of this source's data"""
        pass

    async def last_success(self, session: AsyncSession) -> Optional[datetime]:
        """When a download of this source last succeeded, per `data_sources`"""
        record = await session.get(DataSourceRecord, self.source_id)
        return record.last_success_at if record is not None else None

    async def needs_update(self, session: AsyncSession) -> bool:
        """
        Staleness heuristic: nothing stored yet, or neither the stored data
        nor the last successful download is newer than update_interval.

        Rows a re-download leaves untouched keep their old timestamps, so the
        last successful download counts as an update too. Callers treat this
        as best-effort.
        """
        stats = await self.get_stats(session)
        if stats.record_count == 0:
            return True

        stamps = [t for t in (stats.last_updated, await self.last_success(session)) if t is not None]
        if not stamps:
            return True
        return utcnow() - max(stamps) > self.update_interval

    # ------------------------------------------------------------------
    # Network
    # ------------------------------------------------------------------

    def _client(self, timeout: Optional[float] = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=timeout if timeout is not None else self.timeout,
            transport=self.transport,
            headers={"User-Agent": settings.USER_AGENT},
            follow_redirects=True
        )

    async def _probe(self) -> httpx.Response:
        async with self._client(timeout=self.health_check_timeout) as client:
            return await client.request(
                self.health_check_method,
                self.health_check_url or self.url,
                params=self.health_check_params
            )

    async def health_check(self) -> HealthCheckResult:
        """
        Lightweight reachability probe.

        Never raises: timeouts, refused connections, non-2xx responses and
        unexpected errors all come back as healthy=False with a message.
        Task cancellation still propagates.
        """
        started = time.perf_counter()

        def elapsed_ms() -> int:
            return int((time.perf_counter() - started) * 1000)

        try:
            response = await asyncio.wait_for(self._probe(), timeout=self.health_check_timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            return HealthCheckResult(
                healthy=False,
                response_time_ms=elapsed_ms(),
                message=f"Timed out after {self.health_check_timeout:g}s"
            )
        except httpx.HTTPError as e:
            return HealthCheckResult(
                healthy=False,
                response_time_ms=elapsed_ms(),
                message=f"Connection failed: {type(e).__name__}: {e}"
            )
        except Exception as e:
            logger.warning(f"Unexpected error checking {self.source_id}: {e}")
            return HealthCheckResult(
                healthy=False,
                response_time_ms=elapsed_ms(),
                message=f"Unexpected error: {type(e).__name__}: {e}"
            )

        if response.is_success:
            return HealthCheckResult(
                healthy=True,
                response_time_ms=elapsed_ms(),
                status_code=response.status_code,
                message="OK"
            )

        return HealthCheckResult(
            healthy=False,
            response_time_ms=elapsed_ms(),
            status_code=response.status_code,
            message=f"HTTP {response.status_code} {response.reason_phrase}".strip()
        )

    async def _get_json(
        self,
        client: httpx.AsyncClient,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None
    ) -> Any:
        """
        GET a JSON document.

        Raises:
            SourceRequestError: For transport failures and non-2xx responses
            SourceDataError: If the body is not valid JSON
        """
        try:
            response = await client.get(url, params=params, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise SourceRequestError(
                f"{self.name} returned HTTP {e.response.status_code}",
                context={
                    "source_id": self.source_id,
                    "url": url,
                    "status_code": e.response.status_code
                },
                original_exception=e
            )
        except httpx.HTTPError as e:
            raise SourceRequestError(
                f"Request to {self.name} failed",
                context={"source_id": self.source_id, "url": url},
                original_exception=e
            )

        try:
            return response.json()
        except ValueError as e:
            raise SourceDataError(
                f"{self.name} returned invalid JSON",
                context={"source_id": self.source_id, "url": url},
                original_exception=e
            )

    # ------------------------------------------------------------------
    # Download
    # ------------------------------------------------------------------

    @abstractmethod
    async def download(self, session: AsyncSession, job_logger) -> None:
        """
        Fetch this source's data and persist it through `session`.

        Implementations commit per batch and write progress through
        `job_logger` (an ingestion.jobs.JobLogger). Log lines are written on
        their own connection, so end any read transaction on `session` (commit)
        before logging. Cancellation surfaces as asyncio.CancelledError; the
        uncommitted batch is rolled back when the caller's session closes.
        """
        pass


def source_ids(sources: Iterable[DataSource]) -> List[str]:
    return [source.source_id for source in sources]

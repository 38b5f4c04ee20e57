"""
REST Countries source

Fills the `countries` table from https://restcountries.com.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import SourceDataError
from ingestion.base import DataSource, chunked
from models.base import SourceType, utcnow
from models.reference_data import Country
from schemas.sources import SourceStats


FIELDS = "name,cca2,cca3,unMember,capital,region,subregion"

UPDATABLE_COLUMNS = (
    "name",
    "common_name",
    "iso_alpha2",
    "iso_alpha3",
    "un_member",
    "capital",
    "region",
    "subregion",
    "updated_at",
)


class RestCountriesSource(DataSource):
    """Country names, ISO codes, UN membership, capital and region"""

    source_id = "restcountries"
    name = "REST Countries API"
    source_type = SourceType.REST_API
    url = "https://restcountries.com/v3.1/all"
    health_check_params = {"fields": "cca3"}
    download_strategy = "api"
    tables = ("countries",)

    @staticmethod
    def parse_country(item: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Map one API record to a countries row, or None if it has no alpha-3 code"""
        code = (item.get("cca3") or "").strip().upper()
        if not code:
            return None

        names = item.get("name") or {}
        common = names.get("common")
        capitals = item.get("capital") or []

        return {
            "id": code,
            "name": names.get("official") or common or code,
            "common_name": common,
            "iso_alpha2": item.get("cca2"),
            "iso_alpha3": code,
            "un_member": item.get("unMember"),
            "capital": capitals[0] if capitals else None,
            "region": item.get("region"),
            "subregion": item.get("subregion"),
        }

    async def get_stats(self, session: AsyncSession) -> SourceStats:
        result = await session.execute(
            select(func.count(Country.id), func.max(Country.updated_at))
        )
        count, last_updated = result.one()
        return SourceStats(record_count=count or 0, last_updated=last_updated)

    async def download(self, session: AsyncSession, job_logger) -> None:
        await job_logger.info("Fetching countries from %s", self.url)

        async with self._client() as client:
            payload = await self._get_json(client, self.url, params={"fields": FIELDS})

        if not isinstance(payload, list):
            raise SourceDataError(
                "Expected a list of countries",
                context={"source_id": self.source_id, "payload_type": type(payload).__name__}
            )

        rows: List[Dict[str, Any]] = []
        for item in payload:
            row = self.parse_country(item) if isinstance(item, dict) else None
            if row is not None:
                rows.append(row)

        skipped = len(payload) - len(rows)
        if skipped:
            await job_logger.warn("Skipped %d records without an alpha-3 code", skipped)

        for batch in chunked(rows, self.batch_size):
            now = utcnow()
            values = [dict(row, created_at=now, updated_at=now) for row in batch]
            stmt = insert(Country).values(values)
            stmt = stmt.on_conflict_do_update(
                index_elements=["id"],
                set_={column: stmt.excluded[column] for column in UPDATABLE_COLUMNS}
            )
            await session.execute(stmt)
            await session.commit()

        await job_logger.info("Stored %d countries", len(rows))

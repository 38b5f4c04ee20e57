"""
Natural Earth GeoJSON source

Downloads the 1:110m admin-0 boundaries file and stores each country's
geometry on its existing `countries` row.
"""

from typing import Any, Dict, Optional
import json

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import SourceDataError
from ingestion.base import DataSource, chunked
from models.base import SourceType, utcnow
from models.reference_data import Country
from schemas.sources import SourceStats

# Properties tried in order; Natural Earth uses "-99" for "no code"
CODE_PROPERTIES = ("ISO_A3", "ISO_A3_EH", "ADM0_A3")


def feature_code(feature: Dict[str, Any]) -> Optional[str]:
    properties = feature.get("properties") or {}
    for key in CODE_PROPERTIES:
        code = (properties.get(key) or "").strip().upper()
        if code and code != "-99":
            return code
    return None


class NaturalEarthSource(DataSource):
    """Country boundary geometries from a static GeoJSON file"""

    source_id = "natural-earth"
    name = "Natural Earth GeoJSON"
    source_type = SourceType.STATIC_FILE
    url = (
        "https://raw.githubusercontent.com/nvkelso/natural-earth-vector/"
        "master/geojson/ne_110m_admin_0_countries.geojson"
    )
    health_check_method = "HEAD"
    download_strategy = "file"
    tables = ("countries",)
    required_columns = (("countries", ("geojson_geometry",)),)
    schema_version = 2

    async def get_stats(self, session: AsyncSession) -> SourceStats:
        result = await session.execute(
            select(
                func.count(Country.id),
                func.coalesce(func.sum(func.length(Country.geojson_geometry)), 0),
                func.max(Country.updated_at)
            ).where(Country.geojson_geometry.isnot(None))
        )
        count, storage, last_updated = result.one()
        return SourceStats(record_count=count or 0, storage_bytes=storage or 0, last_updated=last_updated)

    async def download(self, session: AsyncSession, job_logger) -> None:
        await job_logger.info("Downloading %s", self.url)

        async with self._client() as client:
            payload = await self._get_json(client, self.url)

        features = payload.get("features") if isinstance(payload, dict) else None
        if not isinstance(features, list):
            raise SourceDataError(
                "GeoJSON document has no feature list",
                context={"source_id": self.source_id}
            )

        geometries: Dict[str, str] = {}
        for feature in features:
            if not isinstance(feature, dict) or not feature.get("geometry"):
                continue
            code = feature_code(feature)
            if code:
                geometries[code] = json.dumps(feature["geometry"], separators=(",", ":"))

        result = await session.execute(select(Country.id))
        known = set(result.scalars().all())
        # Release the read lock; job log lines are written on another connection
        await session.commit()

        if not known:
            await job_logger.warn("No countries stored yet; geometries need the REST Countries source first")

        matched = sorted(code for code in geometries if code in known)
        unmatched = len(geometries) - len(matched)
        if unmatched:
            await job_logger.warn("%d features did not match a stored country", unmatched)

        for batch in chunked(matched, self.batch_size):
            now = utcnow()
            for code in batch:
                await session.execute(
                    update(Country)
                    .where(Country.id == code)
                    .values(geojson_geometry=geometries[code], updated_at=now)
                )
            await session.commit()

        await job_logger.info("Stored geometries for %d countries", len(matched))

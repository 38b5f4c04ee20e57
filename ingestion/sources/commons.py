"""
Wikimedia Commons audio source

For every stored anthem with a Wikidata id, reads the anthem's audio file
claims (P51) from the Wikidata API, then resolves each file's URL, size,
media type and license through the Commons API.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.ext.asyncio import AsyncSession

from ingestion.base import DataSource, chunked
from models.base import SourceType, utcnow
from models.reference_data import Anthem, AudioRecording
from schemas.sources import SourceStats


WIKIDATA_API_URL = "https://www.wikidata.org/w/api.php"

# Both APIs cap multi-value parameters at 50
API_BATCH_SIZE = 50

AUDIO_PROPERTY = "P51"


def normalize_title(filename: str) -> str:
    """Commons file name without namespace, with spaces instead of underscores"""
    if filename.startswith("File:"):
        filename = filename[len("File:"):]
    return filename.replace("_", " ").strip()


def audio_claims(entity: Dict[str, Any]) -> List[str]:
    """File names of the audio (P51) claims of one Wikidata entity"""
    files = []
    for claim in (entity.get("claims") or {}).get(AUDIO_PROPERTY, []):
        value = ((claim.get("mainsnak") or {}).get("datavalue") or {}).get("value")
        if isinstance(value, str) and value:
            files.append(normalize_title(value))
    return files


def parse_imageinfo(page: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    infos = page.get("imageinfo") or []
    if not infos:
        return None
    info = infos[0]
    if not info.get("url"):
        return None

    mime = info.get("mime") or ""
    metadata = info.get("extmetadata") or {}
    license_name = (metadata.get("LicenseShortName") or {}).get("value")
    duration = info.get("duration")

    return {
        "title": normalize_title(page.get("title", "")),
        "url": info["url"],
        "format": mime.split("/")[-1] or None,
        "file_size_bytes": info.get("size"),
        "duration_seconds": int(round(float(duration))) if duration else None,
        "license": license_name,
    }


class CommonsAudioSource(DataSource):
    """Anthem audio recordings hosted on Wikimedia Commons"""

    source_id = "wikimedia-commons"
    name = "Wikimedia Commons API"
    source_type = SourceType.REST_API
    url = "https://commons.wikimedia.org/w/api.php"
    health_check_params = {"action": "query", "meta": "siteinfo", "format": "json"}
    download_strategy = "api"
    tables = ("audio_recordings",)

    async def get_stats(self, session: AsyncSession) -> SourceStats:
        result = await session.execute(
            select(
                func.count(AudioRecording.id),
                func.coalesce(func.sum(AudioRecording.file_size_bytes), 0),
                func.max(AudioRecording.created_at)
            )
        )
        count, storage, last_updated = result.one()
        return SourceStats(record_count=count or 0, storage_bytes=storage or 0, last_updated=last_updated)

    async def _audio_files(self, client, anthems: Dict[str, str]) -> Dict[str, str]:
        """Map of file name -> country id for the given {wikidata_id: country_id}"""
        files: Dict[str, str] = {}
        for batch in chunked(sorted(anthems), API_BATCH_SIZE):
            payload = await self._get_json(client, WIKIDATA_API_URL, params={
                "action": "wbgetentities",
                "ids": "|".join(batch),
                "props": "claims",
                "format": "json",
            })
            entities = payload.get("entities") if isinstance(payload, dict) else None
            for wikidata_id, entity in (entities or {}).items():
                if wikidata_id not in anthems or not isinstance(entity, dict):
                    continue
                for filename in audio_claims(entity):
                    files.setdefault(filename, anthems[wikidata_id])
        return files

    async def download(self, session: AsyncSession, job_logger) -> None:
        result = await session.execute(
            select(Anthem.wikidata_id, Anthem.country_id).where(Anthem.wikidata_id.isnot(None))
        )
        anthems = {wikidata_id: country_id for wikidata_id, country_id in result.all()}
        await session.commit()

        if not anthems:
            await job_logger.warn("No anthems with Wikidata ids stored; nothing to resolve")
            return

        async with self._client() as client:
            files = await self._audio_files(client, anthems)
            await job_logger.info("Found %d audio files for %d anthems", len(files), len(anthems))

            stored = 0
            for batch in chunked(sorted(files), API_BATCH_SIZE):
                payload = await self._get_json(client, self.url, params={
                    "action": "query",
                    "prop": "imageinfo",
                    "iiprop": "url|size|mime|extmetadata",
                    "titles": "|".join(f"File:{name}" for name in batch),
                    "format": "json",
                })
                pages = ((payload.get("query") or {}).get("pages") or {}) if isinstance(payload, dict) else {}

                rows = []
                now = utcnow()
                for page in pages.values():
                    parsed = parse_imageinfo(page)
                    if parsed is None or parsed["title"] not in files:
                        continue
                    rows.append(dict(
                        parsed,
                        id=f"commons:{parsed['title']}",
                        country_id=files[parsed["title"]],
                        source=self.source_id,
                        created_at=now
                    ))

                if rows:
                    stmt = insert(AudioRecording).values(rows)
                    stmt = stmt.on_conflict_do_update(
                        index_elements=["id"],
                        set_={
                            column: stmt.excluded[column]
                            for column in ("title", "url", "format", "file_size_bytes", "duration_seconds", "license")
                        }
                    )
                    await session.execute(stmt)
                    await session.commit()
                    stored += len(rows)

        missing = len(files) - stored
        if missing:
            await job_logger.warn("%d audio files could not be resolved on Commons", missing)
        await job_logger.info("Stored %d audio recordings", stored)

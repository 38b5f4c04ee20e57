"""
Wikidata SPARQL source

Queries the Wikidata Query Service for each country's national anthem
(P85) with composer, lyricist, adoption date and English Wikipedia article.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import SourceDataError
from ingestion.base import DataSource, chunked
from models.base import SourceType, utcnow
from models.reference_data import Anthem, Country
from schemas.sources import SourceStats


ANTHEM_QUERY = """
SELECT ?iso3 ?anthem ?anthemLabel ?composerLabel ?lyricistLabel ?adopted ?article WHERE {
  ?country wdt:P298 ?iso3 ;
           p:P85 ?statement .
  ?statement ps:P85 ?anthem .
  FILTER NOT EXISTS { ?statement pq:P582 ?ended . }
  OPTIONAL { ?statement pq:P580 ?adopted . }
  OPTIONAL { ?anthem wdt:P86 ?composer . }
  OPTIONAL { ?anthem wdt:P676 ?lyricist . }
  OPTIONAL {
    ?article schema:about ?anthem ;
             schema:isPartOf <https://en.wikipedia.org/> .
  }
  SERVICE wikibase:label { bd:serviceParam wikibase:language "en". }
}
"""


def _value(binding: Dict[str, Any], key: str) -> Optional[str]:
    cell = binding.get(key)
    if not cell:
        return None
    return cell.get("value")


def _entity_id(uri: Optional[str]) -> Optional[str]:
    if not uri:
        return None
    return uri.rstrip("/").rsplit("/", 1)[-1]


def _add_unique(values: List[str], value: Optional[str]):
    if value and value not in values:
        values.append(value)


def parse_bindings(bindings: List[Dict[str, Any]]) -> Dict[tuple, Dict[str, Any]]:
    """
    Fold SPARQL result rows into one record per (country, anthem).

    Multiple composers or lyricists arrive as separate rows and are joined.
    """
    anthems: Dict[tuple, Dict[str, Any]] = {}
    for binding in bindings:
        iso3 = (_value(binding, "iso3") or "").strip().upper()
        wikidata_id = _entity_id(_value(binding, "anthem"))
        if not iso3 or not wikidata_id:
            continue

        record = anthems.setdefault((iso3, wikidata_id), {
            "country_id": iso3,
            "wikidata_id": wikidata_id,
            "name": _value(binding, "anthemLabel") or wikidata_id,
            "composers": [],
            "lyricists": [],
            "adopted_date": None,
            "wikipedia_url": None,
        })
        _add_unique(record["composers"], _value(binding, "composerLabel"))
        _add_unique(record["lyricists"], _value(binding, "lyricistLabel"))

        adopted = _value(binding, "adopted")
        if adopted and not record["adopted_date"]:
            record["adopted_date"] = adopted.lstrip("+")[:10]
        article = _value(binding, "article")
        if article and not record["wikipedia_url"]:
            record["wikipedia_url"] = article

    return anthems


class WikidataAnthemSource(DataSource):
    """National anthem metadata from the Wikidata SPARQL endpoint"""

    source_id = "wikidata"
    name = "Wikidata SPARQL"
    source_type = SourceType.SPARQL
    url = "https://query.wikidata.org/sparql"
    health_check_params = {"query": "ASK { }", "format": "json"}
    download_strategy = "sparql"
    tables = ("anthems",)

    async def get_stats(self, session: AsyncSession) -> SourceStats:
        result = await session.execute(
            select(func.count(Anthem.id), func.max(Anthem.updated_at))
        )
        count, last_updated = result.one()
        return SourceStats(record_count=count or 0, last_updated=last_updated)

    async def _upsert(self, session: AsyncSession, record: Dict[str, Any]):
        result = await session.execute(
            select(Anthem).where(
                and_(
                    Anthem.country_id == record["country_id"],
                    Anthem.wikidata_id == record["wikidata_id"]
                )
            )
        )
        anthem = result.scalars().first()
        if anthem is None:
            anthem = Anthem(
                country_id=record["country_id"],
                wikidata_id=record["wikidata_id"],
                created_at=utcnow()
            )
            session.add(anthem)

        anthem.name = record["name"]
        anthem.composer = ", ".join(record["composers"]) or None
        anthem.lyricist = ", ".join(record["lyricists"]) or None
        anthem.adopted_date = record["adopted_date"]
        anthem.wikipedia_url = record["wikipedia_url"]
        anthem.updated_at = utcnow()

    async def download(self, session: AsyncSession, job_logger) -> None:
        await job_logger.info("Querying %s for national anthems", self.url)

        async with self._client() as client:
            payload = await self._get_json(
                client,
                self.url,
                params={"query": ANTHEM_QUERY, "format": "json"},
                headers={"Accept": "application/sparql-results+json"}
            )

        try:
            bindings = payload["results"]["bindings"]
        except (KeyError, TypeError) as e:
            raise SourceDataError(
                "SPARQL response has no result bindings",
                context={"source_id": self.source_id},
                original_exception=e
            )

        records = parse_bindings(bindings)

        result = await session.execute(select(Country.id))
        known = set(result.scalars().all())
        await session.commit()

        matched = [record for key, record in sorted(records.items()) if key[0] in known]

        skipped = len(records) - len(matched)
        if skipped:
            await job_logger.warn("Skipped %d anthems for countries not stored locally", skipped)

        for batch in chunked(matched, self.batch_size):
            for record in batch:
                await self._upsert(session, record)
            await session.commit()

        await job_logger.info("Stored %d anthems", len(matched))

"""
Registry of the data sources this system knows about.

The registry is an explicitly built, ordered tuple: order decides download
sequencing and numbering in status output. Sources are independent, but
anthems and geometries are matched against stored countries, so the
countries source comes first.
"""

from typing import Iterable, Optional, Sequence, Tuple

import httpx

from ingestion.base import DataSource
from ingestion.sources import (
    CommonsAudioSource,
    NaturalEarthSource,
    RestCountriesSource,
    WikidataAnthemSource,
)

SOURCE_CLASSES = (
    RestCountriesSource,
    NaturalEarthSource,
    WikidataAnthemSource,
    CommonsAudioSource,
)


def build_default_sources(
    transport: Optional[httpx.AsyncBaseTransport] = None,
    **options
) -> Tuple[DataSource, ...]:
    """
    Fresh instances of every known source, in registration order.

    Args:
        transport: Optional httpx transport shared by all sources
        **options: Passed to each source (timeout, health_check_timeout, batch_size)
    """
    return tuple(cls(transport=transport, **options) for cls in SOURCE_CLASSES)


def select_sources(sources: Sequence[DataSource], source_ids: Optional[Iterable[str]]) -> Tuple[DataSource, ...]:
    """
    Subset of `sources` by id, keeping registration order.

    None or an empty selection means all sources.

    Raises:
        ValueError: If an id is not registered
    """
    if not source_ids:
        return tuple(sources)

    wanted = set(source_ids)
    known = {source.source_id for source in sources}
    unknown = sorted(wanted - known)
    if unknown:
        raise ValueError(f"Unknown data source(s): {', '.join(unknown)}")

    return tuple(source for source in sources if source.source_id in wanted)

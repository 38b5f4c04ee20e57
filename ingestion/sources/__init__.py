"""
Concrete data sources, one module per external origin.
"""

from ingestion.sources.rest_countries import RestCountriesSource
from ingestion.sources.natural_earth import NaturalEarthSource
from ingestion.sources.wikidata import WikidataAnthemSource
from ingestion.sources.commons import CommonsAudioSource

__all__ = [
    "RestCountriesSource",
    "NaturalEarthSource",
    "WikidataAnthemSource",
    "CommonsAudioSource",
]

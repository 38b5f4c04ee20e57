from sqlalchemy import Column, String, Integer, DateTime, Text, Boolean, ForeignKey, Index
from sqlalchemy.orm import relationship
from models.base import Base, utcnow


class Country(Base):
    """
    A country, keyed by ISO 3166-1 alpha-3 code.

    Populated by the REST Countries source; the Natural Earth source fills
    geojson_geometry for rows that already exist.
    """
    __tablename__ = "countries"

    id = Column(String, primary_key=True)
    name = Column(Text, nullable=False)
    common_name = Column(Text, nullable=True)
    iso_alpha2 = Column(Text, nullable=True)
    iso_alpha3 = Column(Text, nullable=True)
    un_member = Column(Boolean, nullable=True)
    independence_date = Column(Text, nullable=True)
    capital = Column(Text, nullable=True)
    region = Column(Text, nullable=True)
    subregion = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Added in schema version 2
    geojson_geometry = Column(Text, nullable=True)

    anthems = relationship("Anthem", back_populates="country")
    audio_recordings = relationship("AudioRecording", back_populates="country")


class Anthem(Base):
    """National anthem metadata sourced from Wikidata"""
    __tablename__ = "anthems"

    id = Column(Integer, primary_key=True, autoincrement=True)
    country_id = Column(Text, ForeignKey("countries.id"), nullable=False)
    name = Column(Text, nullable=False)
    native_name = Column(Text, nullable=True)
    composer = Column(Text, nullable=True)
    lyricist = Column(Text, nullable=True)
    adopted_date = Column(Text, nullable=True)
    written_date = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    wikidata_id = Column(Text, nullable=True)
    wikipedia_url = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    country = relationship("Country", back_populates="anthems")

    __table_args__ = (
        Index("idx_anthems_country", "country_id"),
    )


class AudioRecording(Base):
    """An audio file of an anthem, hosted on Wikimedia Commons"""
    __tablename__ = "audio_recordings"

    id = Column(Text, primary_key=True)
    country_id = Column(Text, ForeignKey("countries.id"), nullable=False)
    title = Column(Text, nullable=False)
    url = Column(Text, nullable=False)
    format = Column(Text, nullable=True)
    duration_seconds = Column(Integer, nullable=True)
    type = Column(Text, nullable=True)  # "vocal", "instrumental", ...
    license = Column(Text, nullable=True)
    source = Column(Text, nullable=True)
    quality = Column(Text, nullable=True)
    file_size_bytes = Column(Integer, nullable=True)

    created_at = Column(DateTime, default=utcnow)

    country = relationship("Country", back_populates="audio_recordings")

    __table_args__ = (
        Index("idx_audio_country", "country_id"),
    )

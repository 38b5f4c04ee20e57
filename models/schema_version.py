from sqlalchemy import Column, Integer, DateTime, Text
from models.base import Base, utcnow


class SchemaVersion(Base):
    """
    Log of applied schema versions.

    One row per applied migration set; MAX(version) is the effective
    version of the database file.
    """
    __tablename__ = "schema_version"

    version = Column(Integer, primary_key=True, autoincrement=False)
    applied_at = Column(DateTime, default=utcnow)
    description = Column(Text, nullable=True)

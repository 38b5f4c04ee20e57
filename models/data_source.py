from sqlalchemy import Column, String, Integer, DateTime, Text, Boolean
from models.base import Base, utcnow


class DataSourceRecord(Base):
    """
    Last known health and activity of one data source.

    Source identity is fixed in code; this row only mirrors what the
    status checks and download runs observed.
    """
    __tablename__ = "data_sources"

    id = Column(String, primary_key=True)
    name = Column(Text, nullable=False)
    url = Column(Text, nullable=False)
    type = Column(Text, nullable=True)

    # Health / activity
    status = Column(Text, nullable=True)
    last_check_at = Column(DateTime, nullable=True)
    last_success_at = Column(DateTime, nullable=True)
    response_time_ms = Column(Integer, nullable=True)
    error_count = Column(Integer, default=0)

    created_at = Column(DateTime, default=utcnow)

    # Added in schema version 2
    rate_limit_per_second = Column(Integer, server_default="10", default=10)
    requires_auth = Column(Boolean, server_default="0", default=False)
    health_check_endpoint = Column(Text, nullable=True)
    download_strategy = Column(Text, server_default="file", default="file")
    priority = Column(Integer, server_default="100", default=100)

"""
SQLAlchemy ORM models for persistence.
"""
from sqlalchemy import BigInteger, Boolean, Column, Float, Index, JSON, String

from db import Base


class GeoCacheEntryORM(Base):
    __tablename__ = "geo_cache_entries"

    resource_id = Column(String(64), primary_key=True)
    resource_type = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    color = Column(String, nullable=False)
    icon = Column(String, nullable=False)
    lat = Column(Float, nullable=False)
    lon = Column(Float, nullable=False)
    address = Column(String, nullable=True)
    verified = Column(Boolean, default=False, nullable=False)
    confidence = Column(Float, nullable=False)
    osm_tags = Column(JSON, nullable=True)
    # epoch milliseconds
    first_seen = Column(BigInteger, nullable=False)
    last_updated = Column(BigInteger, nullable=False)
    expires_at = Column(BigInteger, nullable=False, index=True)

    __table_args__ = (
        Index("ix_geo_cache_entries_type_lat_lon", "resource_type", "lat", "lon"),
    )


class QueryCacheEntryORM(Base):
    __tablename__ = "query_cache_entries"

    cache_key = Column(String, primary_key=True)
    resource_type = Column(String, nullable=False)
    resources = Column(JSON, nullable=False)
    created_at = Column(BigInteger, nullable=False)
    expires_at = Column(BigInteger, nullable=False, index=True)

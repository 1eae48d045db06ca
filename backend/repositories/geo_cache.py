"""
Resource store keyed by resource identity, backed by SQLAlchemy/SQLite.

A resource's identity is derived from its type, name and address, so the
same listing rediscovered by a later query (or by another provider)
updates one row instead of creating a duplicate.
"""
import hashlib
import logging
import re
import unicodedata
from typing import Callable, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from db import SessionLocal, now_ms, run_with_conflict_retry, session_scope
from domain.models import (
    Coordinate,
    GeoCacheEntry,
    OSMTagSet,
    Resource,
    ResourceType,
    UpsertStats,
)
from repositories.models import GeoCacheEntryORM
from services.geo import haversine_km, search_window

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 7 * 24 * 3600
_NON_WORD = re.compile(r"[\W_]+", re.UNICODE)


def normalize_identity_text(value: Optional[str]) -> str:
    """Case-fold, strip punctuation and collapse whitespace."""
    if not value:
        return ""
    text = unicodedata.normalize("NFKC", value).casefold()
    return " ".join(_NON_WORD.sub(" ", text).split())


def compute_resource_id(
    resource_type: ResourceType, name: Optional[str], address: Optional[str]
) -> str:
    key = "|".join(
        (resource_type.value, normalize_identity_text(name), normalize_identity_text(address))
    )
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


def _resource_from_orm(orm: GeoCacheEntryORM) -> Resource:
    return Resource(
        type=ResourceType(orm.resource_type),
        name=orm.name,
        color=orm.color,
        icon=orm.icon,
        coordinate=Coordinate(lat=orm.lat, lon=orm.lon),
        address=orm.address,
        verified=bool(orm.verified),
        confidence=orm.confidence,
        osm_tags=OSMTagSet.from_dict(orm.osm_tags),
    )


def _entry_from_orm(orm: GeoCacheEntryORM) -> GeoCacheEntry:
    return GeoCacheEntry(
        resource_id=orm.resource_id,
        resource=_resource_from_orm(orm),
        first_seen=orm.first_seen,
        last_updated=orm.last_updated,
        expires_at=orm.expires_at,
    )


def _apply_resource(orm: GeoCacheEntryORM, resource: Resource, now: int, expires_at: int) -> None:
    orm.resource_type = resource.type.value
    orm.name = resource.name
    orm.color = resource.color
    orm.icon = resource.icon
    orm.lat = resource.coordinate.lat
    orm.lon = resource.coordinate.lon
    orm.address = resource.address
    orm.verified = resource.verified
    orm.confidence = resource.confidence
    orm.osm_tags = resource.osm_tags.to_dict()
    orm.last_updated = now
    orm.expires_at = expires_at


class GeoCache:
    """Upsert, radius search and expiry for normalized resources."""

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], int] = now_ms,
    ):
        self._session_factory = session_factory
        self.ttl_ms = int(ttl_seconds * 1000)
        self._clock = clock

    def upsert(self, resources: Sequence[Resource]) -> UpsertStats:
        """Insert new identities and refresh known ones. Returns new/updated counts."""
        if not resources:
            return UpsertStats()

        def write() -> UpsertStats:
            with session_scope(self._session_factory) as session:
                return self._upsert_in_session(session, resources)

        stats = run_with_conflict_retry(write)
        logger.info(
            "GeoCache upsert: %d new, %d updated", stats.new_count, stats.updated_count
        )
        return stats

    def _upsert_in_session(self, session: Session, resources: Sequence[Resource]) -> UpsertStats:
        now = self._clock()
        expires_at = now + self.ttl_ms
        seen: Dict[str, GeoCacheEntryORM] = {}
        new_count = 0
        updated_count = 0
        for resource in resources:
            resource_id = compute_resource_id(resource.type, resource.name, resource.address)
            orm = seen.get(resource_id) or session.get(GeoCacheEntryORM, resource_id)
            if orm is None:
                orm = GeoCacheEntryORM(resource_id=resource_id, first_seen=now)
                session.add(orm)
                new_count += 1
            else:
                updated_count += 1
            _apply_resource(orm, resource, now, expires_at)
            seen[resource_id] = orm
        return UpsertStats(new_count=new_count, updated_count=updated_count)

    def query_near(
        self, coordinate: Coordinate, radius_km: float, resource_type: ResourceType
    ) -> List[Resource]:
        """Unexpired resources of one type within radius_km, nearest first."""
        if radius_km < 0:
            return []
        now = self._clock()
        min_lat, max_lat, lon_range = search_window(coordinate, radius_km)
        matches = []
        with session_scope(self._session_factory) as session:
            query = session.query(GeoCacheEntryORM).filter(
                GeoCacheEntryORM.resource_type == resource_type.value,
                GeoCacheEntryORM.expires_at > now,
                GeoCacheEntryORM.lat >= min_lat,
                GeoCacheEntryORM.lat <= max_lat,
            )
            if lon_range is not None:
                query = query.filter(
                    GeoCacheEntryORM.lon >= lon_range[0],
                    GeoCacheEntryORM.lon <= lon_range[1],
                )
            for orm in query.all():
                distance = haversine_km(coordinate.lat, coordinate.lon, orm.lat, orm.lon)
                if distance <= radius_km:
                    matches.append((distance, _resource_from_orm(orm)))
        matches.sort(key=lambda item: item[0])
        return [resource for _, resource in matches]

    def list_by_type(self, resource_type: ResourceType) -> List[Resource]:
        now = self._clock()
        with session_scope(self._session_factory) as session:
            rows = (
                session.query(GeoCacheEntryORM)
                .filter(
                    GeoCacheEntryORM.resource_type == resource_type.value,
                    GeoCacheEntryORM.expires_at > now,
                )
                .order_by(GeoCacheEntryORM.name)
                .all()
            )
            return [_resource_from_orm(r) for r in rows]

    def get(self, resource_id: str) -> Optional[GeoCacheEntry]:
        with session_scope(self._session_factory) as session:
            orm = session.get(GeoCacheEntryORM, resource_id)
            return _entry_from_orm(orm) if orm else None

    def sweep_expired(self) -> int:
        """Delete every entry whose expiry has passed. Returns the number removed."""
        now = self._clock()
        with session_scope(self._session_factory) as session:
            removed = (
                session.query(GeoCacheEntryORM)
                .filter(GeoCacheEntryORM.expires_at <= now)
                .delete(synchronize_session=False)
            )
        if removed:
            logger.info("Cleaned up %d expired GeoCache entries", removed)
        return removed

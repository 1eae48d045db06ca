"""
Viewport-level cache of complete result sets, backed by SQLAlchemy/SQLite.

Keys quantize the query center to 3 decimal places (~111 m) and the zoom
to an integer, so nearby repeats of the same search share one entry.
"""
import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, List, Optional, Sequence

from sqlalchemy.orm import Session

from db import SessionLocal, now_ms, run_with_conflict_retry, session_scope
from domain.models import CachedResult, QueryCacheEntry, Resource, ResourceType
from repositories.models import QueryCacheEntryORM

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 24 * 3600
COORD_DECIMALS = 3


def _quantize(value: float, places: int) -> str:
    """Round half-up on the decimal form of value, e.g. 40.7135 -> '40.714'."""
    step = Decimal(1).scaleb(-places)
    rounded = Decimal(str(value)).quantize(step, rounding=ROUND_HALF_UP)
    if rounded.is_zero():
        rounded = rounded.copy_abs()
    return str(rounded)


def make_cache_key(lat: float, lon: float, zoom: float, resource_type: ResourceType) -> str:
    return "_".join(
        (
            resource_type.value,
            _quantize(lat, COORD_DECIMALS),
            _quantize(lon, COORD_DECIMALS),
            _quantize(zoom, 0),
        )
    )


def _entry_from_orm(orm: QueryCacheEntryORM) -> QueryCacheEntry:
    return QueryCacheEntry(
        cache_key=orm.cache_key,
        resources=[Resource.from_dict(item) for item in orm.resources or []],
        created_at=orm.created_at,
        expires_at=orm.expires_at,
    )


class QueryCache:
    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], int] = now_ms,
    ):
        self._session_factory = session_factory
        self.ttl_ms = int(ttl_seconds * 1000)
        self._clock = clock

    def get(
        self, lat: float, lon: float, zoom: float, resource_type: ResourceType
    ) -> Optional[CachedResult]:
        """
        Return the cached result set and its age, or None on a miss.

        Expired entries read as misses but are left in place for the sweep.
        """
        cache_key = make_cache_key(lat, lon, zoom, resource_type)
        now = self._clock()
        with session_scope(self._session_factory) as session:
            orm = session.get(QueryCacheEntryORM, cache_key)
            if orm is None:
                logger.debug("QueryCache miss %s", cache_key)
                return None
            if orm.expires_at <= now:
                logger.debug("QueryCache expired %s", cache_key)
                return None
            entry = _entry_from_orm(orm)
        logger.info("QueryCache hit %s (age: %d ms)", cache_key, now - entry.created_at)
        return CachedResult(resources=entry.resources, age_ms=now - entry.created_at)

    def put(
        self,
        lat: float,
        lon: float,
        zoom: float,
        resource_type: ResourceType,
        resources: Sequence[Resource],
    ) -> None:
        cache_key = make_cache_key(lat, lon, zoom, resource_type)
        payload: List[dict] = [r.to_dict() for r in resources]

        def write() -> None:
            now = self._clock()
            with session_scope(self._session_factory) as session:
                orm = session.get(QueryCacheEntryORM, cache_key)
                if orm is None:
                    orm = QueryCacheEntryORM(cache_key=cache_key)
                    session.add(orm)
                orm.resource_type = resource_type.value
                orm.resources = payload
                orm.created_at = now
                orm.expires_at = now + self.ttl_ms

        run_with_conflict_retry(write)
        logger.info("QueryCache store %s (%d resources)", cache_key, len(payload))

    def invalidate(self, lat: float, lon: float, zoom: float, resource_type: ResourceType) -> bool:
        cache_key = make_cache_key(lat, lon, zoom, resource_type)
        with session_scope(self._session_factory) as session:
            removed = (
                session.query(QueryCacheEntryORM)
                .filter(QueryCacheEntryORM.cache_key == cache_key)
                .delete(synchronize_session=False)
            )
        return removed > 0

    def sweep_expired(self) -> int:
        now = self._clock()
        with session_scope(self._session_factory) as session:
            removed = (
                session.query(QueryCacheEntryORM)
                .filter(QueryCacheEntryORM.expires_at <= now)
                .delete(synchronize_session=False)
            )
        if removed:
            logger.info("Cleaned up %d expired QueryCache entries", removed)
        return removed

"""
Viewport query pipeline.

A query is answered from the first layer that has it:

1. QueryCache: the exact (quantized) viewport was searched recently
2. GeoCache: resources already known within the zoom-derived radius
3. Providers: Overpass, then Places when Overpass yields nothing usable

Provider results are normalized, upserted into the GeoCache and stored as
a full result set in the QueryCache before being returned.
"""
from __future__ import annotations

import logging
import math
from typing import Any, List, Optional

from domain.errors import InvalidQueryError, ProviderError, RateLimitedError
from domain.models import Coordinate, RawProviderRecord, ResolveResult, Resource, ResourceType, ViewportQuery
from repositories import GeoCache, QueryCache
from services.address_resolver import AddressResolver
from services.geo import (
    DEFAULT_BASE_RADIUS_DEGREES,
    bounding_box,
    is_valid_coordinate,
    radius_degrees_for_zoom,
    radius_km_for_zoom,
)
from services.geocoding import get_default_geocoder
from services.normalizer import ResourceNormalizer
from services.providers import OverpassClient, PlacesClient
from settings import settings

logger = logging.getLogger(__name__)

MIN_ZOOM = 0
MAX_ZOOM = 22


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def validate_query(lat: Any, lon: Any, zoom: Any, resource_type: Any) -> ViewportQuery:
    """Check the four query inputs; raise InvalidQueryError before any work is done."""
    missing = [
        name
        for name, value in (("lat", lat), ("lon", lon), ("zoom", zoom), ("resourceType", resource_type))
        if value is None
    ]
    if missing:
        raise InvalidQueryError(f"Missing required parameters: {', '.join(missing)}")
    if not _is_number(lat) or not _is_number(lon) or not is_valid_coordinate(lat, lon):
        raise InvalidQueryError("lat/lon must be numbers within [-90, 90] / [-180, 180]")
    if not _is_number(zoom) or not MIN_ZOOM <= zoom <= MAX_ZOOM:
        raise InvalidQueryError(f"zoom must be a number between {MIN_ZOOM} and {MAX_ZOOM}")
    try:
        kind = ResourceType(resource_type)
    except ValueError:
        raise InvalidQueryError(f"Invalid resource type: {resource_type!r}") from None
    return ViewportQuery(lat=float(lat), lon=float(lon), zoom=float(zoom), resource_type=kind)


class ResourceResolutionService:
    def __init__(
        self,
        query_cache: QueryCache,
        geo_cache: GeoCache,
        normalizer: ResourceNormalizer,
        overpass: OverpassClient,
        places: Optional[PlacesClient] = None,
        base_radius_degrees: float = DEFAULT_BASE_RADIUS_DEGREES,
    ):
        self.query_cache = query_cache
        self.geo_cache = geo_cache
        self.normalizer = normalizer
        self.overpass = overpass
        self.places = places
        self.base_radius_degrees = base_radius_degrees

    def resolve_resources(self, lat: Any, lon: Any, zoom: Any, resource_type: Any) -> ResolveResult:
        query = validate_query(lat, lon, zoom, resource_type)
        kind = query.resource_type

        cached = self.query_cache.get(query.lat, query.lon, query.zoom, kind)
        if cached is not None:
            logger.info(
                "Returning cached %s resources (age: %dmin)", kind.value, cached.age_ms // 60000
            )
            return ResolveResult(resources=cached.resources, from_cache=True, cache_age_ms=cached.age_ms)

        radius_km = radius_km_for_zoom(query.zoom, self.base_radius_degrees)
        known = self.geo_cache.query_near(Coordinate(query.lat, query.lon), radius_km, kind)
        if known:
            logger.info("GeoCache supplied %d %s resources within %.2f km", len(known), kind.value, radius_km)
            self.query_cache.put(query.lat, query.lon, query.zoom, kind, known)
            return ResolveResult(resources=known, from_cache=True)

        resources, complete = self._search_providers(query)
        self.geo_cache.upsert(resources)
        if complete:
            self.query_cache.put(query.lat, query.lon, query.zoom, kind, resources)
            logger.info("Cached %d %s resources", len(resources), kind.value)
        else:
            logger.info("Provider search incomplete, not caching %s result set", kind.value)
        return ResolveResult(resources=resources, from_cache=False)

    def _search_providers(self, query: ViewportQuery) -> tuple[List[Resource], bool]:
        """
        Run the provider chain. Returns (resources, complete) where complete is
        False when a provider error may have hidden results.

        Raises RateLimitedError only when every configured provider is rate limited.
        """
        kind = query.resource_type
        radius_degrees = radius_degrees_for_zoom(query.zoom, self.base_radius_degrees)
        rate_limited: Optional[RateLimitedError] = None
        complete = True

        try:
            records = self.overpass.search(kind, bounding_box(query.lat, query.lon, radius_degrees))
        except RateLimitedError as exc:
            logger.warning("Overpass rate limit exhausted: %s", exc)
            rate_limited, records, complete = exc, [], False
        except ProviderError as exc:
            logger.warning("Overpass search failed: %s", exc)
            records, complete = [], False

        resources = self.normalizer.normalize_all(records, kind)
        if resources or self.places is None:
            if rate_limited is not None:
                raise rate_limited
            return resources, complete

        radius_m = radius_km_for_zoom(query.zoom, self.base_radius_degrees) * 1000
        try:
            places_records: List[RawProviderRecord] = self.places.search(query.lat, query.lon, radius_m, kind)
        except RateLimitedError as exc:
            logger.warning("Places rate limit exhausted: %s", exc)
            raise
        except ProviderError as exc:
            logger.warning("Places search failed: %s", exc)
            if rate_limited is not None:
                raise rate_limited
            return [], False

        return self.normalizer.normalize_all(places_records, kind), complete


_default_service: Optional[ResourceResolutionService] = None


def get_default_resource_service() -> ResourceResolutionService:
    global _default_service
    if _default_service is None:
        geocoder = get_default_geocoder()
        places = None
        if settings.GOOGLE_PLACES_API_KEY:
            places = PlacesClient(
                settings.GOOGLE_PLACES_API_KEY,
                timeout=settings.PLACES_TIMEOUT,
                max_attempts=settings.PROVIDER_MAX_ATTEMPTS,
                backoff_base=settings.PROVIDER_BACKOFF_BASE_SECONDS,
            )
        _default_service = ResourceResolutionService(
            query_cache=QueryCache(ttl_seconds=settings.QUERY_CACHE_TTL_SECONDS),
            geo_cache=GeoCache(ttl_seconds=settings.GEO_CACHE_TTL_SECONDS),
            normalizer=ResourceNormalizer(
                AddressResolver(geocoder),
                forward_geocoder=geocoder,
                min_confidence=settings.MIN_RESOURCE_CONFIDENCE,
            ),
            overpass=OverpassClient(
                timeout=settings.OVERPASS_TIMEOUT,
                max_attempts=settings.PROVIDER_MAX_ATTEMPTS,
                backoff_base=settings.PROVIDER_BACKOFF_BASE_SECONDS,
            ),
            places=places,
            base_radius_degrees=settings.BASE_RADIUS_DEGREES,
        )
    return _default_service

"""
Resource API routes.

Resolves assistance resources around a map viewport and exposes the cache
maintenance operations.
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from domain.errors import CacheError, InvalidQueryError, RateLimitedError
from domain.models import Coordinate, Resource, ResourceType
from repositories.query_cache import make_cache_key
from services.resource_service import ResourceResolutionService, get_default_resource_service
from services.sweeper import CacheSweeper

router = APIRouter()
logger = logging.getLogger(__name__)


class OSMTagsResponse(BaseModel):
    phone: Optional[str] = None
    website: Optional[str] = None
    openingHours: Optional[str] = None
    addrStreet: Optional[str] = None
    addrCity: Optional[str] = None
    addrPostcode: Optional[str] = None


class ResourceResponse(BaseModel):
    type: str
    name: str
    color: str
    icon: str
    lat: float
    lon: float
    address: Optional[str] = None
    verified: bool
    confidence: float
    osmTags: OSMTagsResponse


class ResolveResponse(BaseModel):
    resources: List[ResourceResponse]
    fromCache: bool
    cacheAgeMs: Optional[int] = None


class NearbyResponse(BaseModel):
    resources: List[ResourceResponse]


class InvalidateResponse(BaseModel):
    cleared: bool
    cacheKey: str


class CleanupResponse(BaseModel):
    cleaned: Dict[str, int]


def get_resource_service() -> ResourceResolutionService:
    return get_default_resource_service()


def _error(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error})


def resource_to_response(resource: Resource) -> ResourceResponse:
    return ResourceResponse(**resource.to_dict())


@router.post("", response_model=ResolveResponse, response_model_exclude_unset=True)
def resolve_resources(
    payload: Optional[Dict[str, Any]] = Body(None),
    service: ResourceResolutionService = Depends(get_resource_service),
):
    """
    Resolve resources of one type around a viewport center.

    Body: {"lat": 40.7128, "lon": -74.006, "zoom": 14, "resourceType": "food"}
    """
    payload = payload or {}
    try:
        result = service.resolve_resources(
            payload.get("lat"),
            payload.get("lon"),
            payload.get("zoom"),
            payload.get("resourceType"),
        )
    except InvalidQueryError as exc:
        logger.info("Rejected resource query: %s", exc)
        return _error(400, "Missing or invalid parameters")
    except RateLimitedError as exc:
        logger.warning("Resource query rate limited: %s", exc)
        return _error(429, "Rate limited by upstream provider")
    except CacheError as exc:
        logger.error("Resource cache failure: %s", exc)
        return _error(503, "Resource cache unavailable")

    return ResolveResponse(**result.to_dict())


@router.get("/nearby", response_model=NearbyResponse)
def nearby_resources(
    lat: float = Query(..., ge=-90, le=90),
    lon: float = Query(..., ge=-180, le=180),
    radius_km: float = Query(..., gt=0),
    resource_type: ResourceType = Query(...),
    service: ResourceResolutionService = Depends(get_resource_service),
):
    """Resources already known to the GeoCache within radius_km, nearest first."""
    try:
        resources = service.geo_cache.query_near(Coordinate(lat, lon), radius_km, resource_type)
    except CacheError as exc:
        logger.error("Resource cache failure: %s", exc)
        return _error(503, "Resource cache unavailable")
    return NearbyResponse(resources=[resource_to_response(r) for r in resources])


@router.delete("/cache", response_model=InvalidateResponse)
def invalidate_cached_viewport(
    lat: float = Query(..., ge=-90, le=90),
    lon: float = Query(..., ge=-180, le=180),
    zoom: float = Query(..., ge=0, le=22),
    resource_type: ResourceType = Query(...),
    service: ResourceResolutionService = Depends(get_resource_service),
):
    """Drop one viewport's cached result set."""
    try:
        cleared = service.query_cache.invalidate(lat, lon, zoom, resource_type)
    except CacheError as exc:
        logger.error("Resource cache failure: %s", exc)
        return _error(503, "Resource cache unavailable")
    return InvalidateResponse(cleared=cleared, cacheKey=make_cache_key(lat, lon, zoom, resource_type))


@router.post("/cache/cleanup", response_model=CleanupResponse)
def cleanup_expired(service: ResourceResolutionService = Depends(get_resource_service)):
    """Run the expiry sweep for both caches now."""
    sweeper = CacheSweeper(service.geo_cache, service.query_cache)
    try:
        cleaned = sweeper.run_once()
    except CacheError as exc:
        logger.error("Resource cache failure: %s", exc)
        return _error(503, "Resource cache unavailable")
    return CleanupResponse(cleaned=cleaned)

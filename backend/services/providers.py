"""
Provider search clients: OSM Overpass and Google Places Nearby Search.

Both return RawProviderRecords for the normalizer. A rate-limit answer is
retried with exponential backoff; once the attempts are used up the
RateLimitedError propagates. Every other failure is a ProviderError and is
not retried.
"""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

import requests
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from domain.errors import ProviderError, RateLimitedError
from domain.models import BoundingBox, RawProviderRecord, ResourceType
from settings import settings

logger = logging.getLogger(__name__)

USER_AGENT = "resource-resolver/0.1"
MAX_BACKOFF_SECONDS = 30.0

OVERPASS_FILTERS: Dict[ResourceType, Tuple[str, ...]] = {
    ResourceType.LEGAL: (
        '["office"="lawyer"]',
        '["office"="legal"]',
        '["amenity"="courthouse"]',
        '["office"="notary"]',
        '["amenity"="legal_aid"]',
        '["office"="solicitor"]',
        '["office"="barrister"]',
        '["amenity"="public_building"]["public_building"="legal"]',
        '["shop"="legal"]',
    ),
    ResourceType.SHELTER: ('["amenity"~"^(shelter|social_facility)$"]',),
    ResourceType.HEALTHCARE: ('["amenity"~"^(hospital|clinic|doctors|pharmacy)$"]',),
    ResourceType.FOOD: (
        '["amenity"="food_bank"]',
        '["amenity"="soup_kitchen"]',
        '["amenity"="community_centre"]["community_centre:for"~"food"]',
        '["social_facility"="food_bank"]',
        '["social_facility"="soup_kitchen"]',
        '["amenity"="restaurant"]["cuisine"="free"]',
        '["amenity"="social_facility"]["social_facility:for"~"food"]',
    ),
}

PLACES_NEARBY_URL = "https://maps.googleapis.com/maps/api/place/nearbysearch/json"
PLACES_MIN_RADIUS_M = 10_000
PLACES_MAX_RADIUS_M = 50_000
PLACES_CATEGORIES: Dict[ResourceType, Dict[str, str]] = {
    ResourceType.LEGAL: {"type": "lawyer", "keyword": "legal aid"},
    ResourceType.SHELTER: {"keyword": "homeless shelter"},
    ResourceType.HEALTHCARE: {"keyword": "community health clinic"},
    ResourceType.FOOD: {"keyword": "food bank"},
}
_LODGING_NAME = re.compile(
    r"\b(hotel|motel|inn|resort|hostel|lodging|suites|airbnb|bed and breakfast)\b"
)
_SHELTER_NAME = re.compile(r"\b(shelter|mission|rescue|housing|homeless)\b")
LODGING_TYPES = {"lodging", "hotel", "motel", "resort_hotel", "hostel", "bed_and_breakfast"}


def _rate_limit_retrying(max_attempts: int, backoff_base: float) -> Retrying:
    return Retrying(
        stop=stop_after_attempt(max(1, max_attempts)),
        wait=wait_exponential(multiplier=backoff_base, max=MAX_BACKOFF_SECONDS),
        retry=retry_if_exception_type(RateLimitedError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


def build_overpass_query(resource_type: ResourceType, bbox: BoundingBox, timeout: int = 30) -> str:
    area = f"({bbox.south},{bbox.west},{bbox.north},{bbox.east})"
    statements = "\n".join(f"  nwr{flt}{area};" for flt in OVERPASS_FILTERS[resource_type])
    return f"[out:json][timeout:{timeout}];\n(\n{statements}\n);\nout center tags;"


class OverpassClient:
    provider = "overpass"

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: float = 30.0,
        max_attempts: int = 3,
        backoff_base: float = 1.0,
        session: Optional[requests.Session] = None,
    ):
        self.url = url or settings.OVERPASS_URL
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self._session = session or requests.Session()

    def search(self, resource_type: ResourceType, bbox: BoundingBox) -> List[RawProviderRecord]:
        query = build_overpass_query(resource_type, bbox, int(self.timeout))
        retrying = _rate_limit_retrying(self.max_attempts, self.backoff_base)
        data = retrying(self._post, query)
        elements = data.get("elements") or []
        logger.info("Overpass returned %d %s elements", len(elements), resource_type.value)
        return [RawProviderRecord.osm(el) for el in elements if isinstance(el, dict)]

    def _post(self, query: str) -> Dict[str, Any]:
        try:
            resp = self._session.post(
                self.url,
                data=query.encode("utf-8"),
                headers={"Content-Type": "text/plain", "User-Agent": USER_AGENT},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise ProviderError(f"{self.provider}: request failed: {exc}") from exc

        if resp.status_code == 429:
            raise RateLimitedError(self.provider)
        try:
            resp.raise_for_status()
            data = resp.json()
        except requests.RequestException as exc:
            raise ProviderError(f"{self.provider}: {exc}") from exc
        except ValueError as exc:
            raise ProviderError(f"{self.provider}: invalid JSON response") from exc
        if not isinstance(data, dict):
            raise ProviderError(f"{self.provider}: unexpected response payload")
        return data


def clamp_places_radius(radius_m: float) -> int:
    return int(min(PLACES_MAX_RADIUS_M, max(PLACES_MIN_RADIUS_M, radius_m)))


def is_commercial_lodging(place: Dict[str, Any]) -> bool:
    """True for hotels and similar that Places returns for shelter searches."""
    name = (place.get("name") or "").lower()
    if _SHELTER_NAME.search(name):
        return False
    if _LODGING_NAME.search(name):
        return True
    types = set(place.get("types") or [])
    return bool(types & LODGING_TYPES)


class PlacesClient:
    provider = "places"

    def __init__(
        self,
        api_key: str,
        timeout: float = 10.0,
        max_attempts: int = 3,
        backoff_base: float = 1.0,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self._session = session or requests.Session()

    def search(
        self, lat: float, lon: float, radius_m: float, resource_type: ResourceType
    ) -> List[RawProviderRecord]:
        params: Dict[str, Any] = {
            "location": f"{lat},{lon}",
            "radius": clamp_places_radius(radius_m),
            "key": self.api_key,
            **PLACES_CATEGORIES[resource_type],
        }
        retrying = _rate_limit_retrying(self.max_attempts, self.backoff_base)
        data = retrying(self._get, params)
        results = [r for r in data.get("results") or [] if isinstance(r, dict)]
        if resource_type == ResourceType.SHELTER:
            kept = [r for r in results if not is_commercial_lodging(r)]
            if len(kept) != len(results):
                logger.info("Filtered %d lodging results from shelter search", len(results) - len(kept))
            results = kept
        logger.info("Places returned %d %s results", len(results), resource_type.value)
        return [RawProviderRecord.places(r) for r in results]

    def _get(self, params: Dict[str, Any]) -> Dict[str, Any]:
        try:
            resp = self._session.get(PLACES_NEARBY_URL, params=params, timeout=self.timeout)
        except requests.RequestException as exc:
            raise ProviderError(f"{self.provider}: request failed: {exc}") from exc

        if resp.status_code == 429:
            raise RateLimitedError(self.provider)
        try:
            resp.raise_for_status()
            data = resp.json()
        except requests.RequestException as exc:
            raise ProviderError(f"{self.provider}: {exc}") from exc
        except ValueError as exc:
            raise ProviderError(f"{self.provider}: invalid JSON response") from exc
        if not isinstance(data, dict):
            raise ProviderError(f"{self.provider}: unexpected response payload")

        status = data.get("status")
        if status == "OVER_QUERY_LIMIT":
            raise RateLimitedError(self.provider, "OVER_QUERY_LIMIT")
        if status not in ("OK", "ZERO_RESULTS"):
            raise ProviderError(f"{self.provider}: API error {status}")
        return data

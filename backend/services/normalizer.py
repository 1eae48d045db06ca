"""
Turn raw provider records into canonical Resources.

Records that cannot be located, that land outside valid coordinate ranges,
or that score below the acceptance threshold are dropped here and never
reach the caches.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Protocol

from domain.models import (
    AddressResolution,
    Coordinate,
    OSMTagSet,
    Provider,
    RawProviderRecord,
    Resource,
    ResourceType,
)
from services.address_resolver import (
    BASIC_ADDRESS_CONFIDENCE,
    AddressResolver,
    extract_address_from_osm,
    extract_osm_tags,
    generate_basic_address,
)
from services.confidence import score_resource
from services.geo import to_coordinate

logger = logging.getLogger(__name__)

DEFAULT_MIN_CONFIDENCE = 0.15


@dataclass(frozen=True)
class ResourceStyle:
    color: str
    icon: str


DEFAULT_STYLES: Dict[ResourceType, ResourceStyle] = {
    ResourceType.LEGAL: ResourceStyle(color="#8b5cf6", icon="⚖️"),
    ResourceType.SHELTER: ResourceStyle(color="#3b82f6", icon="🏠"),
    ResourceType.HEALTHCARE: ResourceStyle(color="#ef4444", icon="🏥"),
    ResourceType.FOOD: ResourceStyle(color="#22c55e", icon="🍽️"),
}
FALLBACK_STYLE = ResourceStyle(color="#666666", icon="📍")


class ForwardGeocoder(Protocol):
    def forward(self, address_text: str) -> Optional[Coordinate]: ...


Scorer = Callable[[RawProviderRecord, AddressResolution, OSMTagSet], float]


class ResourceNormalizer:
    def __init__(
        self,
        address_resolver: AddressResolver,
        forward_geocoder: Optional[ForwardGeocoder] = None,
        scorer: Scorer = score_resource,
        min_confidence: float = DEFAULT_MIN_CONFIDENCE,
        styles: Optional[Mapping[ResourceType, ResourceStyle]] = None,
    ):
        self.address_resolver = address_resolver
        self.forward_geocoder = forward_geocoder
        self.scorer = scorer
        self.min_confidence = min_confidence
        self.styles = dict(DEFAULT_STYLES if styles is None else styles)

    def normalize_all(
        self, records: Iterable[RawProviderRecord], resource_type: ResourceType
    ) -> List[Resource]:
        resources = []
        for record in records:
            resource = self.normalize(record, resource_type)
            if resource is not None:
                resources.append(resource)
        return resources

    def normalize(
        self, record: RawProviderRecord, resource_type: ResourceType
    ) -> Optional[Resource]:
        coordinate = self._extract_coordinate(record)
        if coordinate is None:
            return None

        raw_tags = record.tags
        osm_tags = extract_osm_tags(raw_tags)

        try:
            resolution = self.address_resolver.resolve(coordinate, raw_tags)
        except Exception:
            logger.warning(
                "Address resolution failed for %s, using basic address",
                record.name or "unnamed record",
                exc_info=True,
            )
            resolution = AddressResolution(
                address=generate_basic_address(coordinate.lat, coordinate.lon, osm_tags, record.name),
                confidence=BASIC_ADDRESS_CONFIDENCE,
                verified=False,
            )

        confidence = self.scorer(record, resolution, osm_tags)
        if confidence < self.min_confidence:
            logger.info(
                "Skipping low-confidence resource %s (confidence: %.2f)",
                record.name or "Unknown",
                confidence,
            )
            return None

        style = self.styles.get(resource_type, FALLBACK_STYLE)
        resource = Resource(
            type=resource_type,
            name=record.name or f"{resource_type.label} Service",
            color=style.color,
            icon=style.icon,
            coordinate=coordinate,
            address=resolution.address,
            verified=resolution.verified,
            confidence=confidence,
            osm_tags=osm_tags,
        )
        logger.debug(
            "Resource: %s - Address: %s - Confidence: %.2f",
            resource.name,
            resource.address,
            resource.confidence,
        )
        return resource

    def _extract_coordinate(self, record: RawProviderRecord) -> Optional[Coordinate]:
        payload = record.payload
        if record.provider == Provider.PLACES:
            location = (payload.get("geometry") or {}).get("location") or {}
            lat, lon = location.get("lat"), location.get("lng")
            if lat is None or lon is None:
                logger.info("Skipping place without location: %s", payload.get("place_id"))
                return None
        elif payload.get("type") == "node":
            lat, lon = payload.get("lat"), payload.get("lon")
        elif payload.get("type") in ("way", "relation") and payload.get("center"):
            center = payload["center"]
            lat, lon = center.get("lat"), center.get("lon")
        else:
            return self._locate_by_address(record)

        coordinate = to_coordinate(lat, lon)
        if coordinate is None:
            logger.info("Skipping resource with invalid coordinates: %s, %s", lat, lon)
        return coordinate

    def _locate_by_address(self, record: RawProviderRecord) -> Optional[Coordinate]:
        address = extract_address_from_osm(record.tags)
        if address is None:
            logger.info(
                "Skipping element with no coordinates or address: %s %s",
                record.payload.get("type"),
                record.payload.get("id"),
            )
            return None
        if self.forward_geocoder is None:
            logger.info("No forward geocoder configured, dropping %s", address)
            return None
        coordinate = self.forward_geocoder.forward(address)
        if coordinate is None:
            logger.info("Forward geocoding failed for: %s", address)
            return None
        return to_coordinate(coordinate.lat, coordinate.lon)

"""
Address resolution for provider records.

Tiers are tried in order and the first one that yields an address wins:

1. address assembled from the record's own ``addr:*`` tags
2. Nominatim reverse geocoding, scored by how specific the match is
3. a synthetic "Near lat, lon" label

``generate_basic_address`` is the last-resort formatter the normalizer uses
if resolution itself blows up; it only formats strings and cannot fail.
"""
from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Protocol

from domain.errors import GeocodingError
from domain.models import AddressResolution, Coordinate, OSMTagSet
from services.geocoding import ReverseGeocodeResponse

logger = logging.getLogger(__name__)

ADDRESS_TAG_KEYS = ("addr:housenumber", "addr:street", "addr:city", "addr:postcode")
MIN_ADDRESS_PARTS = 2

TAG_ADDRESS_CONFIDENCE = 0.8
REVERSE_BASE_CONFIDENCE = 0.5
NO_DISPLAY_NAME_CONFIDENCE = 0.3
SYNTHETIC_CONFIDENCE = 0.2
BASIC_ADDRESS_CONFIDENCE = 0.4
VERIFIED_ABOVE = 0.7

BUILDING_TYPES = {"building", "house"}
SERVICE_CLASSES = {"amenity", "office"}


class ReverseGeocoder(Protocol):
    def reverse(self, lat: float, lon: float) -> ReverseGeocodeResponse: ...


def _tag(tags: Mapping[str, Any], key: str) -> Optional[str]:
    value = tags.get(key)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def extract_address_from_osm(tags: Optional[Mapping[str, Any]]) -> Optional[str]:
    """Join house number, street, city and postcode when at least two are present."""
    if not tags:
        return None
    parts = [p for p in (_tag(tags, key) for key in ADDRESS_TAG_KEYS) if p]
    if len(parts) >= MIN_ADDRESS_PARTS:
        return ", ".join(parts)
    return None


def extract_osm_tags(tags: Optional[Mapping[str, Any]]) -> OSMTagSet:
    tags = tags or {}
    return OSMTagSet(
        phone=_tag(tags, "phone") or _tag(tags, "contact:phone"),
        website=_tag(tags, "website") or _tag(tags, "contact:website"),
        opening_hours=_tag(tags, "opening_hours"),
        addr_street=_tag(tags, "addr:street"),
        addr_city=_tag(tags, "addr:city"),
        addr_postcode=_tag(tags, "addr:postcode"),
    )


def _format_pair(lat: Any, lon: Any) -> Optional[str]:
    if isinstance(lat, (int, float)) and isinstance(lon, (int, float)):
        return f"{lat:.4f}, {lon:.4f}"
    return None


def generate_basic_address(
    lat: Any,
    lon: Any,
    osm_tags: Optional[OSMTagSet] = None,
    name: Optional[str] = None,
) -> str:
    if osm_tags is not None:
        parts = [p for p in (osm_tags.addr_street, osm_tags.addr_city) if p]
        if parts:
            return ", ".join(parts)

    pair = _format_pair(lat, lon)
    if name and pair:
        return f"{name} ({pair})"
    if name:
        return name
    if pair:
        return pair
    return "Unknown Location"


def _is_well_formed(response: ReverseGeocodeResponse) -> bool:
    text_fields = (response.display_name, response.place_type, response.place_class)
    if any(value is not None and not isinstance(value, str) for value in text_fields):
        return False
    return isinstance(response.address, dict)


def score_reverse_geocode(response: ReverseGeocodeResponse) -> float:
    confidence = REVERSE_BASE_CONFIDENCE
    address = response.address or {}
    if address.get("house_number"):
        confidence += 0.2
    if address.get("road"):
        confidence += 0.2
    if address.get("city") or address.get("town") or address.get("village"):
        confidence += 0.1
    if response.place_type in BUILDING_TYPES:
        confidence += 0.1
    if response.place_class in SERVICE_CLASSES:
        confidence += 0.1
    return round(min(confidence, 1.0), 4)


class AddressResolver:
    """Resolve a point (and optional provider tags) to an address with a confidence."""

    def __init__(self, geocoder: ReverseGeocoder):
        self.geocoder = geocoder

    def resolve(
        self, coordinate: Coordinate, tags: Optional[Mapping[str, Any]] = None
    ) -> AddressResolution:
        resolution = self._from_tags(tags)
        if resolution is not None:
            return resolution
        resolution = self._from_reverse_geocode(coordinate)
        if resolution is not None:
            return resolution
        return AddressResolution(
            address=f"Near {coordinate.lat:.4f}, {coordinate.lon:.4f}",
            confidence=SYNTHETIC_CONFIDENCE,
            verified=False,
        )

    def _from_tags(self, tags: Optional[Mapping[str, Any]]) -> Optional[AddressResolution]:
        address = extract_address_from_osm(tags)
        if address is None:
            logger.debug("Not enough address tags, falling back to reverse geocoding")
            return None
        return AddressResolution(address=address, confidence=TAG_ADDRESS_CONFIDENCE, verified=True)

    def _from_reverse_geocode(self, coordinate: Coordinate) -> Optional[AddressResolution]:
        try:
            response = self.geocoder.reverse(coordinate.lat, coordinate.lon)
        except GeocodingError as exc:
            logger.warning("Reverse geocoding failed, using synthetic address: %s", exc)
            return None
        except Exception:
            logger.warning("Reverse geocoder raised unexpectedly, using synthetic address", exc_info=True)
            return None

        if not _is_well_formed(response):
            logger.warning("Malformed reverse geocode response, using synthetic address: %r", response)
            return None
        if not response.display_name:
            return AddressResolution(
                address=f"Coordinates: {coordinate.lat:.4f}, {coordinate.lon:.4f}",
                confidence=NO_DISPLAY_NAME_CONFIDENCE,
                verified=False,
            )
        confidence = score_reverse_geocode(response)
        return AddressResolution(
            address=response.display_name,
            confidence=confidence,
            verified=confidence > VERIFIED_ABOVE,
        )

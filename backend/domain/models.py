"""
Core domain models for resource resolution.
These are framework-agnostic and can be used across all services.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class ResourceType(str, Enum):
    """Kinds of assistance resources that can be searched for."""
    LEGAL = "legal"
    SHELTER = "shelter"
    HEALTHCARE = "healthcare"
    FOOD = "food"

    @property
    def label(self) -> str:
        return self.value.capitalize()


class Provider(str, Enum):
    """Upstream geodata sources."""
    OSM = "osm"
    PLACES = "places"


@dataclass(frozen=True)
class Coordinate:
    lat: float
    lon: float


@dataclass(frozen=True)
class BoundingBox:
    south: float
    west: float
    north: float
    east: float


@dataclass(frozen=True)
class OSMTagSet:
    """Normalized subset of provider tags kept on every resource."""
    phone: Optional[str] = None
    website: Optional[str] = None
    opening_hours: Optional[str] = None
    addr_street: Optional[str] = None
    addr_city: Optional[str] = None
    addr_postcode: Optional[str] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "phone": self.phone,
            "website": self.website,
            "openingHours": self.opening_hours,
            "addrStreet": self.addr_street,
            "addrCity": self.addr_city,
            "addrPostcode": self.addr_postcode,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "OSMTagSet":
        if not data:
            return cls()
        return cls(
            phone=data.get("phone"),
            website=data.get("website"),
            opening_hours=data.get("openingHours"),
            addr_street=data.get("addrStreet"),
            addr_city=data.get("addrCity"),
            addr_postcode=data.get("addrPostcode"),
        )


@dataclass(frozen=True)
class AddressResolution:
    address: str
    confidence: float
    verified: bool


@dataclass
class RawProviderRecord:
    """
    A record exactly as a provider returned it.

    The payload is an Overpass element for OSM records and a Nearby Search
    result for Places records. Consumed once by the normalizer; never stored.
    """
    provider: Provider
    payload: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def osm(cls, element: Dict[str, Any]) -> "RawProviderRecord":
        return cls(provider=Provider.OSM, payload=element)

    @classmethod
    def places(cls, place: Dict[str, Any]) -> "RawProviderRecord":
        return cls(provider=Provider.PLACES, payload=place)

    @property
    def tags(self) -> Dict[str, Any]:
        if self.provider == Provider.OSM:
            return self.payload.get("tags") or {}
        tags: Dict[str, Any] = {}
        if self.payload.get("name"):
            tags["name"] = self.payload["name"]
        return tags

    @property
    def name(self) -> Optional[str]:
        name = self.tags.get("name")
        if isinstance(name, str) and name.strip():
            return name.strip()
        return None


@dataclass
class Resource:
    """A normalized assistance-service listing."""
    type: ResourceType
    name: str
    color: str
    icon: str
    coordinate: Coordinate
    address: Optional[str] = None
    verified: bool = False
    confidence: float = 0.0
    osm_tags: OSMTagSet = field(default_factory=OSMTagSet)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "name": self.name,
            "color": self.color,
            "icon": self.icon,
            "lat": self.coordinate.lat,
            "lon": self.coordinate.lon,
            "address": self.address,
            "verified": self.verified,
            "confidence": self.confidence,
            "osmTags": self.osm_tags.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Resource":
        return cls(
            type=ResourceType(data["type"]),
            name=data["name"],
            color=data["color"],
            icon=data["icon"],
            coordinate=Coordinate(lat=float(data["lat"]), lon=float(data["lon"])),
            address=data.get("address"),
            verified=bool(data.get("verified", False)),
            confidence=float(data.get("confidence", 0.0)),
            osm_tags=OSMTagSet.from_dict(data.get("osmTags")),
        )


@dataclass
class GeoCacheEntry:
    """Persisted form of a Resource. Timestamps are epoch milliseconds."""
    resource_id: str
    resource: Resource
    first_seen: int
    last_updated: int
    expires_at: int


@dataclass
class QueryCacheEntry:
    cache_key: str
    resources: List[Resource]
    created_at: int
    expires_at: int


@dataclass(frozen=True)
class UpsertStats:
    new_count: int = 0
    updated_count: int = 0


@dataclass
class CachedResult:
    resources: List[Resource]
    age_ms: int


@dataclass(frozen=True)
class ViewportQuery:
    lat: float
    lon: float
    zoom: float
    resource_type: ResourceType


@dataclass
class ResolveResult:
    resources: List[Resource]
    from_cache: bool
    cache_age_ms: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "resources": [r.to_dict() for r in self.resources],
            "fromCache": self.from_cache,
        }
        if self.cache_age_ms is not None:
            data["cacheAgeMs"] = self.cache_age_ms
        return data

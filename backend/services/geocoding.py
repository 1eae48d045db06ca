"""Reverse and forward geocoding against OpenStreetMap Nominatim.

Both directions share one HTTP session and one global request throttle so
the process as a whole stays inside the Nominatim usage policy.
"""

from __future__ import annotations

import logging
import re
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests

from domain.errors import GeocodingError
from domain.models import Coordinate
from services.geo import to_coordinate
from settings import settings

logger = logging.getLogger(__name__)
_session = requests.Session()
_last_request_ts: float = 0.0
_lock = threading.Lock()

FALLBACK_UA = "resource-resolver/0.1 (contact: example@example.com)"


def _redact_email(ua: str) -> str:
    if "@" not in ua:
        return ua
    return re.sub(r"\S+@\S+", "<redacted>", ua)


def _throttled_get(
    url: str,
    *,
    params: dict[str, Any],
    headers: dict[str, str],
    timeout: float,
    min_interval: float,
) -> requests.Response:
    """Perform a GET request with a simple global rate limit."""
    global _last_request_ts
    with _lock:
        now = time.time()
        delta = now - _last_request_ts
        if delta < min_interval:
            time.sleep(min_interval - delta)
        _last_request_ts = time.time()
    return _session.get(url, params=params, headers=headers, timeout=timeout)


def _text_field(data: Dict[str, Any], key: str, lat: float, lon: float) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise GeocodingError(f"reverse geocode field {key!r} is not text for {lat},{lon}")
    return value.strip() or None


@dataclass(frozen=True)
class ReverseGeocodeResponse:
    display_name: Optional[str]
    address: Dict[str, Any] = field(default_factory=dict)
    place_type: Optional[str] = None
    place_class: Optional[str] = None


class NominatimGeocoder:
    def __init__(
        self,
        base_url: Optional[str] = None,
        user_agent: Optional[str] = None,
        referer: Optional[str] = None,
        reverse_timeout: float = 3.0,
        forward_timeout: float = 5.0,
        min_interval: float = 1.1,
    ):
        self.base_url = (base_url or settings.NOMINATIM_BASE_URL).rstrip("/")
        if user_agent is None:
            logger.warning(
                "NOMINATIM_USER_AGENT not set; using fallback UA. "
                "This may violate Nominatim usage policy."
            )
        ua = user_agent or FALLBACK_UA
        logger.debug("Nominatim User-Agent: %s", _redact_email(ua))
        self.headers = {"User-Agent": ua}
        if referer:
            self.headers["Referer"] = referer
        self.reverse_timeout = reverse_timeout
        self.forward_timeout = forward_timeout
        self.min_interval = min_interval

    def reverse(self, lat: float, lon: float) -> ReverseGeocodeResponse:
        """Look up the address at a coordinate.

        Raises GeocodingError on network errors, timeouts, HTTP errors and
        payloads that are not a JSON object.
        """
        params = {
            "format": "json",
            "lat": str(lat),
            "lon": str(lon),
            "zoom": "16",
            "addressdetails": "1",
        }
        try:
            resp = _throttled_get(
                f"{self.base_url}/reverse",
                params=params,
                headers=self.headers,
                timeout=self.reverse_timeout,
                min_interval=self.min_interval,
            )
            resp.raise_for_status()
            data = resp.json()
        except requests.RequestException as exc:
            raise GeocodingError(f"reverse geocode failed for {lat},{lon}: {exc}") from exc
        except ValueError as exc:
            raise GeocodingError(f"reverse geocode returned invalid JSON for {lat},{lon}") from exc

        if not isinstance(data, dict):
            raise GeocodingError(f"reverse geocode returned unexpected payload for {lat},{lon}")
        address = data.get("address")
        if address is not None and not isinstance(address, dict):
            raise GeocodingError(f"reverse geocode returned malformed address for {lat},{lon}")
        return ReverseGeocodeResponse(
            display_name=_text_field(data, "display_name", lat, lon),
            address=address or {},
            place_type=_text_field(data, "type", lat, lon),
            # format=jsonv2 renames "class" to "category"
            place_class=_text_field(data, "class", lat, lon) or _text_field(data, "category", lat, lon),
        )

    def forward(self, address_text: str) -> Optional[Coordinate]:
        """Resolve free-form address text to a coordinate. Returns None on any failure."""
        params = {"format": "json", "q": address_text, "limit": "1"}
        try:
            resp = _throttled_get(
                f"{self.base_url}/search",
                params=params,
                headers=self.headers,
                timeout=self.forward_timeout,
                min_interval=self.min_interval,
            )
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Forward geocoding failed for address %r: %s", address_text, exc)
            return None

        if not isinstance(data, list) or not data or not isinstance(data[0], dict):
            logger.info("Forward geocoding found nothing for address %r", address_text)
            return None
        coordinate = to_coordinate(data[0].get("lat"), data[0].get("lon"))
        if coordinate is None:
            logger.warning("Forward geocoding returned unusable coordinates for %r", address_text)
        return coordinate


_default_geocoder: Optional[NominatimGeocoder] = None


def get_default_geocoder() -> NominatimGeocoder:
    global _default_geocoder
    if _default_geocoder is None:
        _default_geocoder = NominatimGeocoder(
            user_agent=settings.NOMINATIM_USER_AGENT,
            referer=settings.NOMINATIM_REFERER,
            reverse_timeout=settings.REVERSE_GEOCODE_TIMEOUT,
            forward_timeout=settings.FORWARD_GEOCODE_TIMEOUT,
            min_interval=settings.NOMINATIM_MIN_INTERVAL,
        )
    return _default_geocoder

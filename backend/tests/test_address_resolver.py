from unittest.mock import MagicMock

import pytest

from domain.errors import GeocodingError
from domain.models import Coordinate, OSMTagSet
from services.address_resolver import (
    AddressResolver,
    extract_address_from_osm,
    extract_osm_tags,
    generate_basic_address,
    score_reverse_geocode,
)
from services.geocoding import ReverseGeocodeResponse

POINT = Coordinate(40.7128, -74.006)


def test_extract_address_needs_two_parts():
    assert extract_address_from_osm({"addr:street": "Main St"}) is None
    assert extract_address_from_osm({}) is None
    assert extract_address_from_osm(None) is None


def test_extract_address_joins_in_order():
    tags = {
        "addr:postcode": "10001",
        "addr:street": "Main St",
        "addr:housenumber": "12",
        "addr:city": "New York",
    }
    assert extract_address_from_osm(tags) == "12, Main St, New York, 10001"


def test_extract_osm_tags_falls_back_to_contact_keys():
    tags = extract_osm_tags(
        {
            "contact:phone": "+1 555 0100",
            "website": "https://example.org",
            "opening_hours": "Mo-Fr 09:00-17:00",
            "addr:street": "Main St",
        }
    )
    assert tags.phone == "+1 555 0100"
    assert tags.website == "https://example.org"
    assert tags.opening_hours == "Mo-Fr 09:00-17:00"
    assert tags.addr_street == "Main St"
    assert tags.addr_city is None


def test_tag_address_wins_without_geocoding():
    geocoder = MagicMock()
    resolver = AddressResolver(geocoder)

    result = resolver.resolve(POINT, {"addr:street": "Main St", "addr:city": "New York"})

    assert result.address == "Main St, New York"
    assert result.confidence == 0.8
    assert result.verified is True
    geocoder.reverse.assert_not_called()


def test_reverse_geocode_scoring_for_building_with_full_address():
    geocoder = MagicMock()
    geocoder.reverse.return_value = ReverseGeocodeResponse(
        display_name="12 Main St, New York",
        address={"house_number": "12", "road": "Main St", "city": "New York"},
        place_type="building",
        place_class="amenity",
    )

    result = AddressResolver(geocoder).resolve(POINT, {"name": "Clinic"})

    assert result.address == "12 Main St, New York"
    assert result.confidence == 1.0
    assert result.verified is True


def test_reverse_geocode_road_only_is_not_verified():
    geocoder = MagicMock()
    geocoder.reverse.return_value = ReverseGeocodeResponse(
        display_name="Main St", address={"road": "Main St"}
    )

    result = AddressResolver(geocoder).resolve(POINT)

    assert result.confidence == pytest.approx(0.7)
    assert result.verified is False


def test_reverse_geocode_without_display_name():
    geocoder = MagicMock()
    geocoder.reverse.return_value = ReverseGeocodeResponse(display_name=None)

    result = AddressResolver(geocoder).resolve(POINT)

    assert result.address == "Coordinates: 40.7128, -74.0060"
    assert result.confidence == 0.3
    assert result.verified is False


def test_geocoding_failure_falls_back_to_synthetic_address():
    geocoder = MagicMock()
    geocoder.reverse.side_effect = GeocodingError("timeout")

    result = AddressResolver(geocoder).resolve(POINT)

    assert result.address == "Near 40.7128, -74.0060"
    assert result.confidence == 0.2
    assert result.verified is False


def test_score_reverse_geocode_town_counts_as_city():
    response = ReverseGeocodeResponse(display_name="x", address={"town": "Smallville"})
    assert score_reverse_geocode(response) == pytest.approx(0.6)


def test_basic_address_prefers_street_and_city():
    tags = OSMTagSet(addr_street="Main St", addr_city="New York")
    assert generate_basic_address(1.0, 2.0, tags, "Clinic") == "Main St, New York"


def test_basic_address_uses_name_and_coordinates():
    assert generate_basic_address(1.0, 2.0, OSMTagSet(), "Clinic") == "Clinic (1.0000, 2.0000)"


def test_basic_address_without_usable_coordinates():
    assert generate_basic_address(None, None, None, "Clinic") == "Clinic"
    assert generate_basic_address(1.5, 2.25) == "1.5000, 2.2500"
    assert generate_basic_address(None, None) == "Unknown Location"


@pytest.mark.parametrize(
    "response",
    [
        ReverseGeocodeResponse(
            display_name="Somewhere", address={"road": "X"}, place_type=["building"], place_class="amenity"
        ),
        ReverseGeocodeResponse(display_name=["Somewhere"], address={"road": "X"}),
        ReverseGeocodeResponse(display_name="Somewhere", address=["road", "X"]),
    ],
)
def test_malformed_reverse_geocode_falls_back_to_synthetic_address(response):
    geocoder = MagicMock()
    geocoder.reverse.return_value = response

    result = AddressResolver(geocoder).resolve(Coordinate(1, 2))

    assert result.address == "Near 1.0000, 2.0000"
    assert result.confidence == 0.2
    assert result.verified is False


def test_unexpected_geocoder_exception_falls_back_to_synthetic_address():
    geocoder = MagicMock()
    geocoder.reverse.side_effect = KeyError("lat")

    result = AddressResolver(geocoder).resolve(POINT)

    assert result.address == "Near 40.7128, -74.0060"
    assert result.confidence == 0.2

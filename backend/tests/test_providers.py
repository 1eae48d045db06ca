from unittest.mock import MagicMock

import pytest
import requests

from domain.errors import ProviderError, RateLimitedError
from domain.models import BoundingBox, Provider, ResourceType
from services.providers import (
    PLACES_NEARBY_URL,
    OverpassClient,
    PlacesClient,
    build_overpass_query,
    clamp_places_radius,
    is_commercial_lodging,
)

BBOX = BoundingBox(south=40.70, west=-74.02, north=40.72, east=-74.00)


def _response(status_code=200, payload=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = payload if payload is not None else {}
    if status_code >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status_code} error")
    else:
        resp.raise_for_status.return_value = None
    return resp


def test_overpass_query_covers_nodes_ways_and_relations():
    query = build_overpass_query(ResourceType.HEALTHCARE, BBOX, timeout=25)

    assert query.startswith("[out:json][timeout:25];")
    assert 'nwr["amenity"~"^(hospital|clinic|doctors|pharmacy)$"](40.7,-74.02,40.72,-74.0);' in query
    assert query.endswith("out center tags;")


def test_overpass_query_has_one_statement_per_filter():
    query = build_overpass_query(ResourceType.FOOD, BBOX)
    assert query.count("nwr[") == 7
    assert '["amenity"="food_bank"]' in query


def test_overpass_search_returns_osm_records():
    session = MagicMock()
    session.post.return_value = _response(
        payload={"elements": [{"type": "node", "id": 1, "lat": 1, "lon": 2}, "junk"]}
    )
    client = OverpassClient(url="https://overpass.test/api", session=session)

    records = client.search(ResourceType.FOOD, BBOX)

    assert len(records) == 1
    assert records[0].provider == Provider.OSM
    assert records[0].payload["id"] == 1
    args, kwargs = session.post.call_args
    assert args[0] == "https://overpass.test/api"
    assert b"food_bank" in kwargs["data"]


def test_overpass_retries_rate_limit_then_succeeds():
    session = MagicMock()
    session.post.side_effect = [_response(429), _response(payload={"elements": []})]
    client = OverpassClient(url="https://overpass.test/api", backoff_base=0, session=session)

    assert client.search(ResourceType.LEGAL, BBOX) == []
    assert session.post.call_count == 2


def test_overpass_gives_up_after_max_attempts():
    session = MagicMock()
    session.post.return_value = _response(429)
    client = OverpassClient(url="https://overpass.test/api", max_attempts=3, backoff_base=0, session=session)

    with pytest.raises(RateLimitedError) as exc_info:
        client.search(ResourceType.LEGAL, BBOX)

    assert exc_info.value.provider == "overpass"
    assert session.post.call_count == 3


def test_overpass_server_error_is_not_retried():
    session = MagicMock()
    session.post.return_value = _response(504)
    client = OverpassClient(url="https://overpass.test/api", backoff_base=0, session=session)

    with pytest.raises(ProviderError) as exc_info:
        client.search(ResourceType.LEGAL, BBOX)

    assert not isinstance(exc_info.value, RateLimitedError)
    assert session.post.call_count == 1


def test_overpass_network_error_is_provider_error():
    session = MagicMock()
    session.post.side_effect = requests.ConnectionError("refused")
    client = OverpassClient(url="https://overpass.test/api", session=session)

    with pytest.raises(ProviderError):
        client.search(ResourceType.LEGAL, BBOX)


@pytest.mark.parametrize(
    "radius, expected",
    [(1110, 10_000), (17_760, 17_760), (284_160, 50_000)],
)
def test_places_radius_is_clamped(radius, expected):
    assert clamp_places_radius(radius) == expected


@pytest.mark.parametrize(
    "place, lodging",
    [
        ({"name": "Grand Hotel"}, True),
        ({"name": "Sunset Motel & Suites"}, True),
        ({"name": "Harbor View", "types": ["lodging", "point_of_interest"]}, True),
        ({"name": "Hope Mission Shelter", "types": ["lodging"]}, False),
        ({"name": "Dinner Club"}, False),
        ({"name": "Family Housing Center"}, False),
    ],
)
def test_commercial_lodging_detection(place, lodging):
    assert is_commercial_lodging(place) is lodging


def test_places_search_filters_lodging_from_shelters():
    session = MagicMock()
    session.get.return_value = _response(
        payload={
            "status": "OK",
            "results": [
                {"name": "Grand Hotel", "types": ["lodging"]},
                {"name": "City Rescue Mission", "types": ["point_of_interest"]},
            ],
        }
    )
    client = PlacesClient("test-key", session=session)

    records = client.search(40.7, -74.0, 1110, ResourceType.SHELTER)

    assert [r.payload["name"] for r in records] == ["City Rescue Mission"]
    assert records[0].provider == Provider.PLACES
    args, kwargs = session.get.call_args
    assert args[0] == PLACES_NEARBY_URL
    assert kwargs["params"]["radius"] == 10_000
    assert kwargs["params"]["location"] == "40.7,-74.0"
    assert kwargs["params"]["keyword"] == "homeless shelter"
    assert kwargs["params"]["key"] == "test-key"


def test_places_lodging_filter_only_applies_to_shelters():
    session = MagicMock()
    session.get.return_value = _response(
        payload={"status": "OK", "results": [{"name": "Hotel Food Pantry", "types": ["lodging"]}]}
    )
    client = PlacesClient("test-key", session=session)
    assert len(client.search(40.7, -74.0, 20_000, ResourceType.FOOD)) == 1


def test_places_zero_results():
    session = MagicMock()
    session.get.return_value = _response(payload={"status": "ZERO_RESULTS", "results": []})
    assert PlacesClient("k", session=session).search(1.0, 1.0, 1000, ResourceType.FOOD) == []


def test_places_over_query_limit_is_retried_as_rate_limit():
    session = MagicMock()
    session.get.return_value = _response(payload={"status": "OVER_QUERY_LIMIT"})
    client = PlacesClient("k", max_attempts=2, backoff_base=0, session=session)

    with pytest.raises(RateLimitedError):
        client.search(1.0, 1.0, 1000, ResourceType.FOOD)
    assert session.get.call_count == 2


def test_places_request_denied_is_provider_error():
    session = MagicMock()
    session.get.return_value = _response(payload={"status": "REQUEST_DENIED"})
    client = PlacesClient("k", backoff_base=0, session=session)

    with pytest.raises(ProviderError) as exc_info:
        client.search(1.0, 1.0, 1000, ResourceType.FOOD)
    assert "REQUEST_DENIED" in str(exc_info.value)
    assert session.get.call_count == 1

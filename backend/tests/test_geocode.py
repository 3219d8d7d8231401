import json

import httpx
import respx
from conftest import ADDRESS, DummyRedis

from fieldbook.services.geocode import CACHE_TTL, LatLng, MapboxGeocoder


@respx.mock
def test_mapbox_returns_center_as_lat_lng():
    route = respx.get(host="api.mapbox.com").respond(
        200, json={"features": [{"center": [-84.388, 33.749]}]}
    )

    result = MapboxGeocoder("token-123").geocode(ADDRESS)

    assert result == LatLng(lat=33.749, lng=-84.388)
    assert route.called
    request = route.calls.last.request
    assert request.url.params["access_token"] == "token-123"
    assert request.url.params["limit"] == "1"
    assert "mapbox.places" in request.url.path


def test_no_token_skips_the_network():
    with respx.mock(assert_all_called=False) as mock:
        route = mock.get(host="api.mapbox.com").respond(200, json={})
        assert MapboxGeocoder(None).geocode(ADDRESS) is None
        assert not route.called


@respx.mock
def test_empty_features_is_none():
    respx.get(host="api.mapbox.com").respond(200, json={"features": []})
    assert MapboxGeocoder("t").geocode(ADDRESS) is None


@respx.mock
def test_http_error_is_none():
    respx.get(host="api.mapbox.com").respond(401, json={"message": "Not Authorized"})
    assert MapboxGeocoder("t").geocode(ADDRESS) is None


@respx.mock
def test_timeout_is_none():
    respx.get(host="api.mapbox.com").mock(side_effect=httpx.ConnectTimeout)
    assert MapboxGeocoder("t", timeout=0.1).geocode(ADDRESS) is None


@respx.mock
def test_positive_results_are_cached():
    route = respx.get(host="api.mapbox.com").respond(
        200, json={"features": [{"center": [-84.5, 33.9]}]}
    )
    redis = DummyRedis()
    geocoder = MapboxGeocoder("t", redis=redis)

    first = geocoder.geocode(ADDRESS)
    second = geocoder.geocode(ADDRESS)

    assert first == second == LatLng(lat=33.9, lng=-84.5)
    assert route.call_count == 1
    [(key, raw)] = redis.values.items()
    assert key.startswith("geocode:")
    assert json.loads(raw) == {"lat": 33.9, "lng": -84.5}
    assert CACHE_TTL == 7 * 86400


@respx.mock
def test_cache_errors_are_ignored():
    class BrokenRedis:
        def get(self, key):
            raise ConnectionError("down")

        def setex(self, key, ttl, value):
            raise ConnectionError("down")

    respx.get(host="api.mapbox.com").respond(200, json={"features": [{"center": [-84.5, 33.9]}]})
    assert MapboxGeocoder("t", redis=BrokenRedis()).geocode(ADDRESS) == LatLng(lat=33.9, lng=-84.5)

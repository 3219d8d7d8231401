"""
backend/fieldbook/services/geocode.py

Forward geocoding (address → coordinates), best-effort.

Any failure (no token, timeout, HTTP error, empty result) yields None; callers
treat None as "location unknown" and keep going. Positive results are cached in
Redis for a week; cache errors are ignored.
"""

import hashlib
import json
import logging
from dataclasses import dataclass
from typing import Optional, Protocol
from urllib.parse import quote

import httpx
from redis import Redis

from ..config import settings

logger = logging.getLogger(__name__)

MAPBOX_URL = "https://api.mapbox.com/geocoding/v5/mapbox.places/{query}.json"
CACHE_KEY_PREFIX = "geocode"
CACHE_TTL = 7 * 86400


@dataclass(frozen=True)
class LatLng:
    lat: float
    lng: float


@dataclass(frozen=True)
class Address:
    address_line1: str
    city: str
    state: str
    postal_code: str

    @property
    def one_line(self) -> str:
        parts = [self.address_line1, self.city, self.state, self.postal_code]
        return ", ".join(p.strip() for p in parts if p and p.strip())


class Geocoder(Protocol):
    def geocode(self, address: Address) -> Optional[LatLng]: ...


class MapboxGeocoder:
    """Mapbox forward geocoding with a bounded timeout and optional Redis cache."""

    def __init__(
        self,
        access_token: Optional[str],
        timeout: float = 3.0,
        redis: Optional[Redis] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.access_token = access_token
        self.timeout = timeout
        self.redis = redis
        self.client = client

    def geocode(self, address: Address) -> Optional[LatLng]:
        if not self.access_token:
            return None
        query = address.one_line
        if not query:
            return None

        cached = self._cache_get(query)
        if cached is not None:
            return cached

        result = self._fetch(query)
        if result is not None:
            self._cache_set(query, result)
        return result

    def _fetch(self, query: str) -> Optional[LatLng]:
        url = MAPBOX_URL.format(query=quote(query, safe=""))
        params = {"access_token": self.access_token, "limit": 1}
        try:
            if self.client is not None:
                response = self.client.get(url, params=params, timeout=self.timeout)
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    response = client.get(url, params=params)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Geocoding failed for {query!r}: {e}")
            return None

        features = data.get("features") if isinstance(data, dict) else None
        center = features[0].get("center") if features and isinstance(features[0], dict) else None
        if isinstance(center, list) and len(center) == 2:
            lng, lat = center
            if isinstance(lat, (int, float)) and isinstance(lng, (int, float)):
                return LatLng(lat=float(lat), lng=float(lng))
        return None

    # ── Cache ────────────────────────────────────────────────────────────

    def _key(self, query: str) -> str:
        digest = hashlib.sha1(query.lower().encode("utf-8")).hexdigest()
        return f"{CACHE_KEY_PREFIX}:{digest}"

    def _cache_get(self, query: str) -> Optional[LatLng]:
        if self.redis is None:
            return None
        try:
            raw = self.redis.get(self._key(query))
        except Exception as e:
            logger.warning(f"Geocode cache read failed: {e}")
            return None
        if not raw:
            return None
        try:
            data = json.loads(raw)
            return LatLng(lat=float(data["lat"]), lng=float(data["lng"]))
        except (ValueError, KeyError, TypeError):
            return None

    def _cache_set(self, query: str, value: LatLng) -> None:
        if self.redis is None:
            return
        try:
            self.redis.setex(self._key(query), CACHE_TTL, json.dumps({"lat": value.lat, "lng": value.lng}))
        except Exception as e:
            logger.warning(f"Geocode cache write failed: {e}")


def get_geocoder() -> Geocoder:
    """FastAPI dependency: configured Mapbox geocoder backed by the shared Redis."""
    from ..redis_client import redis_client

    return MapboxGeocoder(
        access_token=settings.mapbox_access_token,
        timeout=settings.geocode_timeout_seconds,
        redis=redis_client,
    )

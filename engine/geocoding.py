"""Place names for stays: favourite places first, then Nominatim reverse geocoding.

Nominatim names follow "Name (Road HouseNumber)". Without a usable name the
road alone is used, and without a road the full display name. Requests go
through one shared session, at most one per ``min_interval_seconds`` as the
OSM usage policy asks.
"""

import dataclasses
import logging
import time
from typing import Any, Callable, Optional

import requests
from sqlalchemy.orm import Session

from geo import haversine_m
from models import Place

logger = logging.getLogger(__name__)

# Stays within this distance of a favourite take its name
FAVORITE_RADIUS_M = 80.0


@dataclasses.dataclass(frozen=True, slots=True)
class NominatimConfig:
    base_url: str = "https://nominatim.openstreetmap.org/reverse"
    user_agent: str = "LifelineTimeline/1.0 (timeline engine)"
    zoom: int = 18
    timeout_seconds: float = 10.0
    min_interval_seconds: float = 1.1
    accept_language: Optional[str] = None


def format_nominatim_name(payload: dict[str, Any]) -> Optional[str]:
    address = payload.get("address") or {}
    road = address.get("road")
    if not road:
        return payload.get("display_name") or None

    street = f"{road} {address['house_number']}" if address.get("house_number") else road
    name = (payload.get("name") or "").strip()
    if name:
        return f"{name} ({street})"
    return street


class NominatimGeocoder:
    """Rate-limited Nominatim reverse lookups over a shared requests session."""

    def __init__(self, config: Optional[NominatimConfig] = None):
        self.config = config or NominatimConfig()
        self.session = requests.Session()
        self.session.headers.update({
            "User-Agent": self.config.user_agent,
            "Accept": "application/json",
        })
        self._last_request_at = 0.0

    def _throttle(self):
        wait = self.config.min_interval_seconds - (time.monotonic() - self._last_request_at)
        if wait > 0:
            time.sleep(wait)
        self._last_request_at = time.monotonic()

    def reverse_raw(self, lat: float, lon: float) -> dict[str, Any]:
        """Raw jsonv2 payload. Raises requests.RequestException or ValueError."""
        params = {
            "lat": f"{lat:.7f}",
            "lon": f"{lon:.7f}",
            "format": "jsonv2",
            "zoom": self.config.zoom,
            "addressdetails": 1,
        }
        if self.config.accept_language:
            params["accept-language"] = self.config.accept_language

        self._throttle()
        resp = self.session.get(self.config.base_url, params=params, timeout=self.config.timeout_seconds)
        resp.raise_for_status()
        return resp.json()

    def reverse(self, lat: float, lon: float) -> Optional[str]:
        try:
            payload = self.reverse_raw(lat, lon)
        except (requests.RequestException, ValueError) as e:
            logger.warning("Nominatim reverse geocode failed for %.5f,%.5f: %s", lat, lon, e)
            return None

        if "error" in payload:
            # e.g. "Unable to geocode" over open water
            logger.debug("Nominatim has no address for %.5f,%.5f: %s", lat, lon, payload["error"])
            return None
        return format_nominatim_name(payload)


_geocoder = NominatimGeocoder()


def reverse_geocode(lat: float, lon: float) -> Optional[str]:
    return _geocoder.reverse(lat, lon)


def format_coordinates(lat: float, lon: float) -> str:
    return f"{lat:.5f}, {lon:.5f}"


def nearest_favorite(
    db: Session, user_id: int, lat: float, lon: float, radius_m: float = FAVORITE_RADIUS_M,
) -> Optional[Place]:
    """Closest named Place within radius_m, or None."""
    best_place = None
    best_dist = float("inf")
    for p in db.query(Place).filter(Place.user_id == user_id).all():
        d = haversine_m(lat, lon, p.latitude, p.longitude)
        if d < best_dist:
            best_dist = d
            best_place = p

    if best_place is not None and best_dist <= radius_m:
        return best_place
    return None


def make_place_name_resolver(
    db: Session, user_id: int, use_geocoder: bool = True,
) -> Callable[[float, float], str]:
    """Build a ``(lat, lon) -> name`` resolver for one run.

    Lookups are cached per run on coordinates rounded to ~1 m.
    """
    cache: dict[tuple[float, float], str] = {}

    def resolve_name(lat: float, lon: float) -> str:
        key = (round(lat, 5), round(lon, 5))
        if key in cache:
            return cache[key]

        place = nearest_favorite(db, user_id, lat, lon)
        if place is not None:
            name = place.name
        else:
            name = (reverse_geocode(lat, lon) if use_geocoder else None) or format_coordinates(lat, lon)
        cache[key] = name
        return name

    return resolve_name

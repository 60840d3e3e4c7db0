"""Geospatial helpers."""
from __future__ import annotations

import math
from typing import Optional, Protocol

from .models import UserLocation

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lng2 - lng1)

    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def format_distance(km: float) -> str:
    """Render a distance for display: whole meters below 1 km, else one-decimal km."""
    try:
        value = float(km)
    except (TypeError, ValueError):
        return "0 m"
    if not math.isfinite(value) or value <= 0:
        return "0 m"
    if value < 1:
        # 0.9996 km would round to "1000 m"; keep it below the km threshold.
        return f"{min(int(round(value * 1000)), 999)} m"
    return f"{value:.1f} km"


def distance_to_user(lat: float, lng: float, location: Optional[UserLocation]) -> Optional[float]:
    if location is None or not location.available:
        return None
    return haversine_km(location.lat, location.lng, lat, lng)


class GeolocationProvider(Protocol):
    def current_location(self) -> UserLocation:
        ...


class StaticLocationProvider:
    """Geolocation provider backed by a fixed position (CLI flags, tests)."""

    def __init__(
        self,
        lat: Optional[float] = None,
        lng: Optional[float] = None,
        error: Optional[str] = None,
        accuracy: Optional[float] = None,
    ) -> None:
        if error is None and (lat is None or lng is None):
            error = "Location unavailable"
        self._location = UserLocation(lat=lat, lng=lng, accuracy=accuracy, error=error)

    def current_location(self) -> UserLocation:
        return self._location

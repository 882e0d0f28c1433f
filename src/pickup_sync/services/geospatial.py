"""Geospatial helper functions."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Optional

from ..models.domain import Zone

EARTH_RADIUS_MILES = 3958.8


def haversine_miles(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute the great-circle distance in miles using the Haversine formula."""

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_MILES * c


@dataclass(slots=True)
class ZoneMatch:
    zone: Zone
    distance_miles: float


def find_nearest_zone(lat: float, lon: float, zones: Iterable[Zone]) -> Optional[ZoneMatch]:
    """Return the closest zone whose radius covers the point.

    Zones without a radius cover any distance.
    """

    best: Optional[ZoneMatch] = None
    for zone in zones:
        distance = haversine_miles(lat, lon, zone.center_lat, zone.center_lng)
        radius = zone.radius_miles if zone.radius_miles is not None else math.inf
        if distance > radius:
            continue
        if best is None or distance < best.distance_miles:
            best = ZoneMatch(zone=zone, distance_miles=distance)
    return best

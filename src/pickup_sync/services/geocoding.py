"""Address geocoding through the Google Geocoding API."""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from ..config import settings

GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"

logger = logging.getLogger(__name__)


class GoogleGeocoder:
    def __init__(self, api_key: str | None = None, timeout: float = 10.0) -> None:
        self.api_key = api_key or settings.google_maps_api_key
        self.timeout = timeout

    def geocode(self, address: str) -> Optional[tuple[float, float]]:
        """Return ``(lat, lng)`` for an address, or None when it cannot be resolved."""
        if not self.api_key or not address:
            return None
        try:
            response = httpx.get(
                GEOCODE_URL,
                params={"address": address, "key": self.api_key},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning(f"Geocoding failed for '{address}': {exc}")
            return None

        results = data.get("results") or []
        if data.get("status") != "OK" or not results:
            return None
        location = results[0].get("geometry", {}).get("location", {})
        if "lat" not in location or "lng" not in location:
            return None
        return float(location["lat"]), float(location["lng"])

"""
Infrastructure layer: reverse geocoding for points of interest.
"""
import logging
from typing import Optional

import httpx

from bloomwatch.config import settings
from bloomwatch.infrastructure.api_constants import APIConstants, GeocoderEndpoints

logger = logging.getLogger(__name__)

_ADDRESS_KEYS = ("village", "town", "city")


def fallback_place_name(lat: float, lon: float) -> str:
    return f"Location at {lat:.4f}, {lon:.4f}"


class ReverseGeocoder:
    """Resolves a readable place name for a coordinate using Nominatim."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self.base_url = settings.geocoder_base_url
        self.client = client or httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "User-Agent": settings.geocoder_user_agent,
                "Accept": APIConstants.CONTENT_TYPE_JSON,
            },
            timeout=settings.http_timeout,
        )

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    async def place_name(self, lat: float, lon: float) -> str:
        """
        Look up the name of the place at a coordinate.

        Never fails: lookup errors yield a coordinate-based name.

        Args:
            lat: Latitude in degrees
            lon: Longitude in degrees

        Returns:
            Village, town or city name, the full display name, or a fallback
        """
        try:
            response = await self.client.get(
                GeocoderEndpoints.REVERSE,
                params={"format": "json", "lat": lat, "lon": lon},
                headers={"Cache-Control": "no-cache"},
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Reverse geocoding failed for ({lat}, {lon}): {e}")
            return fallback_place_name(lat, lon)

        if not isinstance(data, dict):
            return fallback_place_name(lat, lon)
        address = data.get("address") or {}
        for key in _ADDRESS_KEYS:
            if address.get(key):
                return address[key]
        return data.get("display_name") or fallback_place_name(lat, lon)


# Singleton instance
_geocoder: Optional[ReverseGeocoder] = None


def get_geocoder() -> ReverseGeocoder:
    """
    Get or create the singleton reverse geocoder.

    Returns:
        ReverseGeocoder instance
    """
    global _geocoder
    if _geocoder is None:
        _geocoder = ReverseGeocoder()
    return _geocoder

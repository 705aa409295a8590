from __future__ import annotations

from typing import Dict, Optional

import httpx

from chatastro.config import Settings
from chatastro.exceptions import LocationNotFoundError
from chatastro.logger import logger
from chatastro.utils.models import Coordinates

DEFAULT_TIMEZONE = "Asia/Kolkata"

# Used only when the provider call fails.
FALLBACK_CITIES: Dict[str, Coordinates] = {
    "mumbai": Coordinates(latitude=19.0760, longitude=72.8777, timezone=DEFAULT_TIMEZONE),
    "delhi": Coordinates(latitude=28.7041, longitude=77.1025, timezone=DEFAULT_TIMEZONE),
    "bangalore": Coordinates(latitude=12.9716, longitude=77.5946, timezone=DEFAULT_TIMEZONE),
    "kolkata": Coordinates(latitude=22.5726, longitude=88.3639, timezone=DEFAULT_TIMEZONE),
    "chennai": Coordinates(latitude=13.0827, longitude=80.2707, timezone=DEFAULT_TIMEZONE),
    "hyderabad": Coordinates(latitude=17.3850, longitude=78.4867, timezone=DEFAULT_TIMEZONE),
    "pune": Coordinates(latitude=18.5204, longitude=73.8567, timezone=DEFAULT_TIMEZONE),
}


def fallback_coordinates(place: str) -> Optional[Coordinates]:
    return FALLBACK_CITIES.get(place.lower().strip())


class GeocodingService:
    """OpenCage forward geocoding with a static table for well-known cities."""

    def __init__(self, settings: Settings):
        self.settings = settings

    async def _lookup(self, place: str) -> Coordinates:
        params = {
            "q": place,
            "key": self.settings.opencage_api_key,
            "limit": 1,
        }
        attempts = self.settings.provider_max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                async with httpx.AsyncClient(timeout=self.settings.api_timeout_seconds) as client:
                    resp = await client.get(self.settings.opencage_base_url, params=params)
                    resp.raise_for_status()
                break
            except httpx.TransportError as exc:
                if attempt == attempts:
                    raise
                logger.warning("geocoding_retry", place=place, attempt=attempt, error=str(exc))

        data = resp.json()
        results = data.get("results") or []
        if not results:
            raise LookupError("Location not found")

        result = results[0]
        geometry = result.get("geometry", {})
        components = result.get("components", {})
        timezone = (result.get("annotations", {}).get("timezone") or {}).get("name") or DEFAULT_TIMEZONE
        return Coordinates(
            latitude=geometry["lat"],
            longitude=geometry["lng"],
            timezone=timezone,
            city=components.get("city") or components.get("town") or components.get("village"),
            country=components.get("country"),
        )

    async def resolve(self, place: str) -> Coordinates:
        """
        Resolve a place name to coordinates.

        Raises:
            LocationNotFoundError: provider failed and the place is not a fallback city
        """
        logger.info("geocoding_request", place=place)
        try:
            coordinates = await self._lookup(place)
        except Exception as exc:  # noqa: BLE001
            fallback = fallback_coordinates(place)
            if fallback is not None:
                logger.warning("geocoding_fallback_used", place=place, error=str(exc))
                return fallback
            logger.error("geocoding_error", place=place, error=str(exc))
            raise LocationNotFoundError(place, original_error=str(exc)) from exc

        logger.info(
            "geocoding_response",
            place=place,
            city=coordinates.city,
            country=coordinates.country,
        )
        return coordinates

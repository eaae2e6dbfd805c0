"""Place search via OpenStreetMap Nominatim."""

import logging
from typing import Any

import pydantic
from geopy import exc as geopy_exc  # pyright: ignore[reportMissingTypeStubs]
from geopy import geocoders  # pyright: ignore[reportMissingTypeStubs]

from .. import settings

logger = logging.getLogger(__name__)

MAX_RESULTS = 10


class GeocodeCandidate(pydantic.BaseModel):
    """A place matching a free-text query."""

    name: str
    display_name: str
    latitude: float
    longitude: float


class Geocoder:
    """Best-effort forward geocoding; failures yield no candidates."""

    def __init__(self, geolocator: Any) -> None:
        self.geolocator = geolocator

    @classmethod
    def from_settings(cls) -> 'Geocoder':
        return cls(geocoders.Nominatim(user_agent=settings.GEOCODER_USER_AGENT))

    def geocode(self, query: str, limit: int = 5) -> list[GeocodeCandidate]:
        """Candidates for ``query``, at most ``limit`` (clamped to 1..10)."""
        query = query.strip()
        if not query:
            return []
        limit = max(1, min(limit, MAX_RESULTS))
        try:
            results = self.geolocator.geocode(query, exactly_one=False, limit=limit)
        except geopy_exc.GeopyError:
            logger.warning('Geocoding failed for %r', query, exc_info=True)
            return []

        candidates: list[GeocodeCandidate] = []
        for result in results or []:
            raw: dict[str, Any] = getattr(result, 'raw', {}) or {}
            display_name = str(result.address or raw.get('display_name') or query)
            candidates.append(
                GeocodeCandidate(
                    name=str(raw.get('name') or display_name),
                    display_name=display_name,
                    latitude=float(result.latitude),
                    longitude=float(result.longitude),
                )
            )
        return candidates


def get_geocoder() -> Geocoder:
    """Dependency returning a Nominatim-backed geocoder."""
    return Geocoder.from_settings()

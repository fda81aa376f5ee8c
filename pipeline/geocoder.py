"""
Reverse geocoding for photo GPS coordinates.

Two providers:
- nominatim: OpenStreetMap Nominatim reverse lookup over HTTP (default)
- offline: bundled reverse_geocoder database, no network access needed

Lookups are best effort: any failure returns None.
"""

import logging
import os
from dataclasses import asdict, dataclass
from typing import Any

import pycountry
import requests
import reverse_geocoder as rg
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

NOMINATIM_URL = "https://nominatim.openstreetmap.org/reverse"
DEFAULT_USER_AGENT = "MeuralManager/1.0"
PROVIDERS = ("nominatim", "offline")


@dataclass
class LocationInfo:
    """Place descriptor for a GPS position."""
    display_name: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    country_code: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def build_location(address: dict[str, Any], fallback_name: str | None = None) -> LocationInfo:
    """
    Build a LocationInfo from address components.

    The city prefers city over town over village. The display name joins
    city, state and country, falling back to the service's own name.
    """
    city = address.get("city") or address.get("town") or address.get("village") or None
    state = address.get("state") or None
    country = address.get("country") or None

    parts = [part for part in (city, state, country) if part]
    return LocationInfo(
        display_name=", ".join(parts) or fallback_name or None,
        city=city,
        state=state,
        country=country,
        country_code=address.get("country_code") or None,
    )


class Geocoder:
    """
    Resolves GPS coordinates to a place name.

    Usage:
        geocoder = Geocoder()  # Uses GEOCODER_PROVIDER env var
        location = geocoder.reverse(48.8584, 2.2945)
        if location:
            print(location.city)
    """

    def __init__(
        self,
        provider: str | None = None,
        user_agent: str | None = None,
        timeout: int = 10,
        session: requests.Session | None = None,
    ):
        """
        Initialize geocoder.

        Args:
            provider: "nominatim" or "offline". If None, reads from
                      GEOCODER_PROVIDER environment variable.
            user_agent: Client identifier sent to Nominatim.
            timeout: HTTP timeout in seconds.
            session: Optional requests session to reuse.
        """
        self.provider = provider or os.getenv("GEOCODER_PROVIDER", "nominatim")
        if self.provider not in PROVIDERS:
            raise ValueError(
                f"Unknown geocoder provider: {self.provider}. Valid: {', '.join(PROVIDERS)}"
            )
        self.user_agent = user_agent or os.getenv("GEOCODER_USER_AGENT", DEFAULT_USER_AGENT)
        self.timeout = timeout
        self._session = session or requests.Session()

    def reverse(self, lat: float, lon: float) -> LocationInfo | None:
        """
        Look up the place at a GPS position.

        Args:
            lat: Latitude in decimal degrees.
            lon: Longitude in decimal degrees.

        Returns:
            LocationInfo, or None if the lookup failed.
        """
        try:
            if self.provider == "offline":
                location = self._reverse_offline(lat, lon)
            else:
                location = self._reverse_nominatim(lat, lon)
        except Exception as e:
            logger.warning(f"Reverse geocoding failed for ({lat}, {lon}): {e}")
            return None

        if location:
            logger.debug(f"Geocoded ({lat}, {lon}) -> {location.display_name}")
        return location

    def _reverse_nominatim(self, lat: float, lon: float) -> LocationInfo | None:
        response = self._session.get(
            NOMINATIM_URL,
            params={"lat": lat, "lon": lon, "format": "json"},
            headers={"User-Agent": self.user_agent},
            timeout=self.timeout,
        )
        response.raise_for_status()
        data = response.json()

        if not isinstance(data, dict) or "error" in data:
            logger.debug(f"Nominatim returned no result for ({lat}, {lon}): {data}")
            return None

        return build_location(data.get("address") or {}, data.get("display_name"))

    def _reverse_offline(self, lat: float, lon: float) -> LocationInfo | None:
        # mode=1 for single-threaded lookup of a single point
        results = rg.search((lat, lon), mode=1)
        if not results:
            return None

        result = results[0]
        country_code = result.get("cc") or None
        country = None
        if country_code:
            country_obj = pycountry.countries.get(alpha_2=country_code)
            country = country_obj.name if country_obj else country_code

        return build_location({
            "city": result.get("name"),
            "state": result.get("admin1"),
            "country": country,
            "country_code": country_code.lower() if country_code else None,
        })

    def close(self) -> None:
        """Close the HTTP session."""
        self._session.close()

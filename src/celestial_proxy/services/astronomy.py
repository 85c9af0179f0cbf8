"""Astronomy API client (moon phase, rise/set, zodiac and location labels)."""

import math
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from celestial_proxy.config import Settings
from celestial_proxy.services import extractors as fx
from celestial_proxy.services.normalize import round_coordinate
from celestial_proxy.services.upstream import (
    InvalidRequestError,
    UpstreamClient,
    UpstreamPayloadError,
)


@dataclass(frozen=True)
class Coordinates:
    """Location given as latitude/longitude."""

    lat: float
    lon: float


@dataclass(frozen=True)
class PlaceQuery:
    """Location given as free text, e.g. ``"Boise, ID"``."""

    place: str


@dataclass(frozen=True)
class ClientAddress:
    """Location inferred by the upstream from an IPv4/IPv6 address."""

    ip: str


LocationSpec = Coordinates | PlaceQuery | ClientAddress


@dataclass
class ResolvedLocation:
    """Coordinates and labels as resolved by the upstream."""

    lat: float
    lon: float
    city: str | None = None
    state: str | None = None
    country: str | None = None
    locality: str | None = None
    elevation: float | None = None


@dataclass
class AstronomyReading:
    """Normalized astronomy response for one date and location."""

    phase: str | None
    moonrise: str | None
    moonset: str | None
    zodiac_sign: str | None
    location: ResolvedLocation


def location_params(location: LocationSpec | None) -> dict[str, str]:
    """Translate a location spec into upstream query parameters.

    Raises:
        InvalidRequestError: If no usable location was given
    """
    if isinstance(location, Coordinates):
        # The upstream expects "long", not "lon"
        return {
            "lat": str(round_coordinate(location.lat)),
            "long": str(round_coordinate(location.lon)),
        }
    if isinstance(location, PlaceQuery) and location.place.strip():
        return {"location": location.place.strip()}
    if isinstance(location, ClientAddress) and location.ip.strip():
        return {"ip": location.ip.strip()}
    raise InvalidRequestError("No location provided")


def _as_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _in_range(value: float, bound: float) -> bool:
    return -bound <= value <= bound


def _as_text(value: Any) -> str | None:
    return None if value is None else str(value)


def parse_reading(data: Mapping[str, Any], requested: LocationSpec) -> AstronomyReading:
    """Build a reading from an upstream payload.

    Coordinates echoed by the upstream win; the caller's coordinates are the
    fallback.

    Raises:
        UpstreamPayloadError: If no coordinates can be determined or the
            upstream echoes values outside the valid range
    """
    lat = _as_float(fx.first_present(data, fx.LOCATION_LAT))
    lon = _as_float(fx.first_present(data, fx.LOCATION_LON))
    if isinstance(requested, Coordinates):
        lat = lat if lat is not None else round_coordinate(requested.lat)
        lon = lon if lon is not None else round_coordinate(requested.lon)
    if lat is None or lon is None:
        raise UpstreamPayloadError("Missing coordinates in astronomy response", "astronomy")
    if not _in_range(lat, 90) or not _in_range(lon, 180):
        raise UpstreamPayloadError(
            f"Invalid coordinates in astronomy response: {lat}, {lon}", "astronomy"
        )

    return AstronomyReading(
        phase=_as_text(fx.first_present(data, fx.MOON_PHASE)),
        moonrise=_as_text(fx.first_present(data, fx.MOONRISE)),
        moonset=_as_text(fx.first_present(data, fx.MOONSET)),
        zodiac_sign=_as_text(fx.first_present(data, fx.MOON_ZODIAC)),
        location=ResolvedLocation(
            lat=lat,
            lon=lon,
            city=_as_text(fx.first_present(data, fx.LOCATION_CITY)),
            state=_as_text(fx.first_present(data, fx.LOCATION_STATE)),
            country=_as_text(fx.first_present(data, fx.LOCATION_COUNTRY)),
            locality=_as_text(fx.first_present(data, fx.LOCATION_LOCALITY)),
            elevation=_as_float(fx.first_present(data, fx.LOCATION_ELEVATION)),
        ),
    )


class AstronomyClient:
    """Client for the astronomy provider."""

    def __init__(self, settings: Settings, upstream: UpstreamClient | None = None) -> None:
        """Initialize client with settings."""
        self._api_key = settings.moon_api_key
        self._upstream = upstream or UpstreamClient(
            "astronomy",
            settings.moon_api_url,
            settings.moon_timeout_seconds,
            retry_backoff=settings.retry_backoff_seconds,
        )

    async def fetch(self, for_date: str, location: LocationSpec) -> AstronomyReading:
        """Fetch moon data for a canonical date and a location.

        Args:
            for_date: Date as ``YYYY-MM-DD``
            location: Coordinates, free-text place or client IP

        Returns:
            Normalized reading with resolved coordinates and labels

        Raises:
            InvalidRequestError: If no location was given (no request is made)
            UpstreamError: If the upstream call fails or returns no coordinates
        """
        params = {"apiKey": self._api_key, "date": for_date, **location_params(location)}
        data = await self._upstream.request(params=params)
        if not isinstance(data, Mapping):
            raise UpstreamPayloadError("Astronomy API returned a non-JSON body", "astronomy")
        return parse_reading(data, location)

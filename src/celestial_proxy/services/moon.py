"""Moon service orchestrating the astronomy client and the durable store."""

import re
from datetime import date, datetime

import structlog

from celestial_proxy.api.schemas import MoonLocation, MoonSnapshot
from celestial_proxy.services.astronomy import AstronomyClient, AstronomyReading, LocationSpec
from celestial_proxy.services.normalize import (
    combine_date_time,
    round_coordinate,
    to_canonical_date,
)
from celestial_proxy.services.upstream import InvalidRequestError
from celestial_proxy.storage.models import MoonData
from celestial_proxy.storage.moon_store import MoonStore

logger = structlog.get_logger()

_YMD = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _parse_date(for_date: str) -> date:
    if not _YMD.match(for_date):
        raise InvalidRequestError(f"Invalid date {for_date!r}, expected YYYY-MM-DD")
    try:
        return date.fromisoformat(for_date)
    except ValueError as e:
        raise InvalidRequestError(f"Invalid date {for_date!r}") from e


class MoonService:
    """Service for fetching moon data with a durable 24h cache."""

    def __init__(self, client: AstronomyClient, store: MoonStore) -> None:
        """Initialize service with astronomy client and store."""
        self._client = client
        self._store = store

    async def get_moon_for(
        self,
        when: str | date | datetime,
        location: LocationSpec,
    ) -> MoonSnapshot:
        """Get moon data for a date and location.

        The upstream is always called once: it resolves place names and IPs to
        coordinates and supplies the location labels and zodiac sign, which
        the durable row does not hold. The row then decides whether phase and
        rise/set come from the cache or are written fresh.

        Args:
            when: Calendar date (``YYYY-MM-DD``), date or datetime
            location: Coordinates, free-text place or client IP

        Returns:
            Moon snapshot keyed by the rounded coordinates

        Raises:
            InvalidRequestError: If the date or location is unusable
            UpstreamError: If the astronomy API call fails
            SQLAlchemyError: If the store rejects the read or write
        """
        for_date = to_canonical_date(when)
        day = _parse_date(for_date)

        reading = await self._client.fetch(for_date, location)
        lat = round_coordinate(reading.location.lat)
        lon = round_coordinate(reading.location.lon)

        cached = await self._store.find_fresh_row(day, lat, lon)
        if cached is not None:
            logger.info(
                "Moon cache hit",
                for_date=for_date,
                lat=lat,
                lon=lon,
                cache_hit=True,
            )
            return self._snapshot(for_date, cached, reading)

        logger.info(
            "Moon cache miss, storing upstream data",
            for_date=for_date,
            lat=lat,
            lon=lon,
            cache_hit=False,
        )
        row = await self._store.upsert_row(
            day,
            lat,
            lon,
            reading.phase,
            combine_date_time(for_date, reading.moonrise),
            combine_date_time(for_date, reading.moonset),
        )
        return self._snapshot(for_date, row, reading)

    @staticmethod
    def _snapshot(for_date: str, row: MoonData, reading: AstronomyReading) -> MoonSnapshot:
        resolved = reading.location
        return MoonSnapshot(
            forDate=for_date,
            lat=row.lat,
            lon=row.lon,
            phase=row.phase,
            moonrise=row.moonrise,
            moonset=row.moonset,
            zodiacSign=reading.zodiac_sign,
            location=MoonLocation(
                lat=resolved.lat,
                lon=resolved.lon,
                city=resolved.city,
                state=resolved.state,
                country=resolved.country,
                locality=resolved.locality,
                elevationMeters=resolved.elevation,
            ),
        )

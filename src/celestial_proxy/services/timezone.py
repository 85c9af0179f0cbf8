"""Best-effort timezone lookup for resolved coordinates."""

from functools import lru_cache

import structlog
from timezonefinder import TimezoneFinder

logger = structlog.get_logger()


@lru_cache(maxsize=1)
def _finder() -> TimezoneFinder:
    return TimezoneFinder()


@lru_cache(maxsize=4096)
def _lookup(lat: float, lon: float) -> str | None:
    return _finder().timezone_at(lng=lon, lat=lat)


def resolve_timezone(lat: float, lon: float) -> str | None:
    """IANA timezone name for the coordinates, e.g. ``America/Boise``.

    A failure here must not block the moon response, so it is logged and
    reported as None.
    """
    try:
        return _lookup(round(lat, 4), round(lon, 4))
    except Exception as e:
        logger.warning("Timezone lookup failed", lat=lat, lon=lon, error=str(e))
        return None

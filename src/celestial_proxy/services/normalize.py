"""Cache-key normalization for coordinates and dates."""

import re
from datetime import UTC, date, datetime, time
from decimal import ROUND_HALF_UP, Decimal

# 2 decimal places is roughly 1.1 km of latitude
COORDINATE_PRECISION = Decimal("0.01")

_HHMM = re.compile(r"^(\d{1,2}):(\d{2})$")


def round_coordinate(value: float) -> float:
    """Round a latitude or longitude to the cache-key precision.

    Rounds half away from zero on the decimal form of the value, so that
    ``43.615`` becomes ``43.62`` despite its binary representation.
    """
    rounded = Decimal(str(value)).quantize(COORDINATE_PRECISION, rounding=ROUND_HALF_UP)
    return float(rounded)


def to_canonical_date(value: str | date | datetime | float) -> str:
    """Return ``value`` as a ``YYYY-MM-DD`` string in UTC.

    Strings are assumed to be formatted already and pass through unchanged.
    Aware datetimes are converted to UTC, naive ones are taken as UTC.
    Numbers are POSIX timestamps in seconds.
    """
    if isinstance(value, str):
        return value
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(UTC)
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return datetime.fromtimestamp(value, tz=UTC).date().isoformat()


def today() -> str:
    """Current UTC date in canonical form."""
    return to_canonical_date(datetime.now(UTC))


def combine_date_time(for_date: str, hhmm: str | None) -> datetime | None:
    """Join a canonical date and an upstream ``H:MM``/``HH:MM`` time.

    Returns None for missing or malformed times (including placeholders such
    as ``"-:-"`` that astronomy providers emit when the moon does not rise).
    """
    if not hhmm or not isinstance(hhmm, str):
        return None
    match = _HHMM.match(hhmm.strip())
    if match is None:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        return None
    try:
        day = date.fromisoformat(for_date)
    except ValueError:
        return None
    return datetime.combine(day, time(hour, minute))

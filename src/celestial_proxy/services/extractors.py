"""Ordered field extractors for upstream JSON of uncertain shape.

Each concept (moon phase, card name, ...) maps to a tuple of extractors that
are tried in order; the first one yielding a non-empty value wins. Keeping the
candidates in tables makes the precedence explicit and testable without any
network code.
"""

from collections.abc import Callable, Mapping, Sequence
from typing import Any

Extractor = Callable[[Mapping[str, Any]], Any]


def field(*path: str) -> Extractor:
    """Build an extractor that follows ``path`` through nested mappings."""

    def extract(data: Mapping[str, Any]) -> Any:
        current: Any = data
        for key in path:
            if not isinstance(current, Mapping):
                return None
            current = current.get(key)
        return current

    extract.__name__ = "field:" + ".".join(path)
    return extract


def first_present(data: Mapping[str, Any], extractors: Sequence[Extractor]) -> Any:
    """Return the first value that is neither None nor an empty string."""
    for extractor in extractors:
        value = extractor(data)
        if value is not None and value != "":
            return value
    return None


# Astronomy provider
MOON_PHASE: tuple[Extractor, ...] = (
    field("moon_phase"),
    field("moonPhase"),
    field("phase"),
    field("astronomy", "moon_phase"),
    field("moon_status"),
)
MOONRISE: tuple[Extractor, ...] = (
    field("moonrise"),
    field("moonRise"),
    field("astronomy", "moonrise"),
)
MOONSET: tuple[Extractor, ...] = (
    field("moonset"),
    field("moonSet"),
    field("astronomy", "moonset"),
)
MOON_ZODIAC: tuple[Extractor, ...] = (
    field("moon_zodiac"),
    field("moon_sign"),
    field("zodiacSign"),
)
LOCATION_LAT: tuple[Extractor, ...] = (
    field("location", "latitude"),
    field("location", "lat"),
)
LOCATION_LON: tuple[Extractor, ...] = (
    field("location", "longitude"),
    field("location", "lon"),
    field("location", "long"),
)
LOCATION_CITY: tuple[Extractor, ...] = (field("location", "city"),)
LOCATION_STATE: tuple[Extractor, ...] = (
    field("location", "state_prov"),
    field("location", "state"),
)
LOCATION_COUNTRY: tuple[Extractor, ...] = (
    field("location", "country_name"),
    field("location", "country"),
)
LOCATION_LOCALITY: tuple[Extractor, ...] = (field("location", "locality"),)
LOCATION_ELEVATION: tuple[Extractor, ...] = (
    field("location", "elevation"),
    field("location", "elevationMeters"),
)

# Tarot provider
CARD_ID: tuple[Extractor, ...] = (field("id"), field("card_id"))
CARD_NAME: tuple[Extractor, ...] = (field("name"), field("card_name"), field("title"))
CARD_SUIT: tuple[Extractor, ...] = (field("suit"),)
CARD_ARCANA: tuple[Extractor, ...] = (
    field("arcana"),
    field("arcana_type"),
    field("type"),
)
CARD_UPRIGHT: tuple[Extractor, ...] = (
    field("upright_meaning"),
    field("uprightMeaning"),
    field("meaning_up"),
    field("upright"),
)
CARD_REVERSED: tuple[Extractor, ...] = (
    field("reversed_meaning"),
    field("reversedMeaning"),
    field("meaning_rev"),
    field("reversed"),
)
CARD_IMAGE: tuple[Extractor, ...] = (
    field("image_url"),
    field("imageUrl"),
    field("image"),
    field("img"),
)
DRAW_ANSWER: tuple[Extractor, ...] = (field("answer"), field("result"))
DRAW_REASON: tuple[Extractor, ...] = (
    field("reason"),
    field("explanation"),
    field("message"),
)
DAILY_DATE: tuple[Extractor, ...] = (field("date"), field("for_date"), field("day"))
LIST_ITEMS: tuple[Extractor, ...] = (field("cards"), field("items"), field("results"))
LIST_TOTAL: tuple[Extractor, ...] = (field("total"), field("count"))

"""Tarot service: daily card, yes/no draws and card lookups."""

from collections.abc import Mapping
from typing import Any
from urllib.parse import urlencode

import structlog

from celestial_proxy.api.schemas import CardList, CardOfDay, DrawResult, TarotCard
from celestial_proxy.config import Settings
from celestial_proxy.services import extractors as fx
from celestial_proxy.services.cache import CacheService
from celestial_proxy.services.normalize import today
from celestial_proxy.services.upstream import (
    InvalidRequestError,
    MethodFallback,
    UpstreamClient,
    UpstreamPayloadError,
)

logger = structlog.get_logger()

# Some deployments of the tarot API only accept POST for draws
TAROT_QUIRKS = {
    ("GET", "/yesno", 405): MethodFallback(method="POST", json={}),
}

DEFAULT_LIMIT = 100
MAX_LIMIT = 200
MAX_OFFSET = 10000

ANSWERS = ("Yes", "No", "Maybe")


def create_tarot_client(settings: Settings) -> UpstreamClient:
    """Upstream client for the tarot API."""
    return UpstreamClient(
        "tarot",
        settings.tarot_api_base,
        settings.tarot_timeout_seconds,
        retry_backoff=settings.retry_backoff_seconds,
        quirks=TAROT_QUIRKS,
    )


def _text(value: Any) -> str | None:
    return None if value is None else str(value)


def _as_int(value: Any) -> int | None:
    """Integer from an ``int`` or an integral string; anything else is None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _arcana(value: Any, suit: str | None) -> str:
    if value is not None:
        label = str(value).strip().lower()
        if label.startswith("major"):
            return "Major"
        if label.startswith("minor"):
            return "Minor"
    return "Major" if suit is None else "Minor"


def card_from_payload(data: Any) -> TarotCard:
    """Normalize one upstream card object.

    Raises:
        UpstreamPayloadError: If the card has no usable id or name
    """
    if not isinstance(data, Mapping):
        raise UpstreamPayloadError("Tarot card is not an object", "tarot")
    card_id = _as_int(fx.first_present(data, fx.CARD_ID))
    name = fx.first_present(data, fx.CARD_NAME)
    if card_id is None or card_id <= 0 or name is None:
        raise UpstreamPayloadError("Tarot card without a valid id or name", "tarot")

    suit = _text(fx.first_present(data, fx.CARD_SUIT))
    return TarotCard(
        id=card_id,
        name=str(name),
        suit=suit,
        arcana=_arcana(fx.first_present(data, fx.CARD_ARCANA), suit),
        uprightMeaning=_text(fx.first_present(data, fx.CARD_UPRIGHT)),
        reversedMeaning=_text(fx.first_present(data, fx.CARD_REVERSED)),
        imageUrl=_text(fx.first_present(data, fx.CARD_IMAGE)),
    )


def normalize_answer(value: Any) -> str:
    """Title-case an upstream answer ("yes" -> "Yes")."""
    answer = str(value or "").strip().capitalize()
    if answer not in ANSWERS:
        raise UpstreamPayloadError(f"Unexpected yes/no answer {value!r}", "tarot")
    return answer


def clamp_int(value: int | str | None, default: int, low: int, high: int, name: str) -> int:
    """Parse an optional integer parameter and clamp it into ``[low, high]``.

    Raises:
        InvalidRequestError: If the value is not an integer
    """
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise InvalidRequestError(f"Invalid {name}")
    try:
        number = int(value)
    except (TypeError, ValueError) as e:
        raise InvalidRequestError(f"Invalid {name}") from e
    return max(low, min(high, number))


class TarotService:
    """Service for tarot data.

    Card metadata is cached in memory (it changes rarely); draws are never
    cached so repeated questions can get different answers.
    """

    def __init__(self, settings: Settings, cache: CacheService, client: UpstreamClient) -> None:
        """Initialize service with cache and upstream client."""
        self._cache = cache
        self._client = client
        self._daily_ttl = settings.tarot_daily_ttl_seconds
        self._cards_ttl = settings.tarot_cards_ttl_seconds
        self._card_ttl = settings.tarot_card_ttl_seconds

    async def get_card_of_day(
        self,
        seed: str | int | None = None,
        date: str | None = None,
    ) -> CardOfDay:
        """Get the deterministic card of the day.

        The same seed/date combination returns the same cached card for 24h.
        Without parameters the key is today's UTC date, so the card turns
        over at midnight even while a previous entry is alive.
        """
        params: dict[str, str] = {}
        if seed is not None and str(seed):
            params["seed"] = str(seed)
        if date is not None and str(date):
            params["date"] = str(date)
        query = urlencode(params)
        key = f"tarot:daily:{query}" if query else f"tarot:daily:today:{today()}"

        async def produce() -> CardOfDay:
            data = await self._client.request("/daily", params=params or None)
            return self._card_of_day(data)

        return await self._cache.wrap(key, self._daily_ttl, produce)

    async def draw_yes_no(self, question: str | None = None) -> DrawResult:
        """Draw a Yes/No/Maybe answer; never cached.

        With a question the draw is POSTed, otherwise a GET is issued (and
        retried as POST by the client when the upstream only allows POST).
        """
        if question:
            data = await self._client.request(
                "/yesno",
                method="POST",
                json={"question": question},
            )
        else:
            data = await self._client.request("/yesno")

        if not isinstance(data, Mapping):
            raise UpstreamPayloadError("Tarot API returned a non-JSON draw", "tarot")

        card_data = data.get("card")
        return DrawResult(
            answer=normalize_answer(fx.first_present(data, fx.DRAW_ANSWER)),
            reason=_text(fx.first_present(data, fx.DRAW_REASON)),
            card=card_from_payload(card_data) if isinstance(card_data, Mapping) else None,
        )

    async def get_cards(
        self,
        arcana: str | None = None,
        suit: str | None = None,
        q: str | None = None,
        limit: int | str | None = None,
        offset: int | str | None = None,
    ) -> CardList:
        """List cards with optional filters and clamped pagination."""
        page_limit = clamp_int(limit, DEFAULT_LIMIT, 1, MAX_LIMIT, "limit")
        page_offset = clamp_int(offset, 0, 0, MAX_OFFSET, "offset")

        params: dict[str, str] = {}
        for name, value in (("arcana", arcana), ("suit", suit), ("q", q)):
            if value:
                params[name] = value
        params["limit"] = str(page_limit)
        params["offset"] = str(page_offset)
        key = f"tarot:cards:{urlencode(params)}"

        async def produce() -> CardList:
            data = await self._client.request("/cards", params=params)
            return self._card_list(data, page_limit, page_offset)

        return await self._cache.wrap(key, self._cards_ttl, produce)

    async def get_card_by_id(self, card_id: int) -> TarotCard:
        """Get a single card.

        Raises:
            InvalidRequestError: If ``card_id`` is not a positive integer
            UpstreamRejectedError: If the upstream does not know the card
        """
        if isinstance(card_id, bool) or not isinstance(card_id, int) or card_id <= 0:
            raise InvalidRequestError("Invalid id")

        async def produce() -> TarotCard:
            data = await self._client.request(f"/cards/{card_id}")
            return card_from_payload(data)

        return await self._cache.wrap(f"tarot:card:{card_id}", self._card_ttl, produce)

    @staticmethod
    def _card_of_day(data: Any) -> CardOfDay:
        if not isinstance(data, Mapping):
            raise UpstreamPayloadError("Tarot API returned a non-JSON daily card", "tarot")
        card_data = data.get("card", data)
        return CardOfDay(
            card=card_from_payload(card_data),
            date=_text(fx.first_present(data, fx.DAILY_DATE)),
        )

    @staticmethod
    def _card_list(data: Any, limit: int, offset: int) -> CardList:
        if isinstance(data, list):
            items, total = data, None
        elif isinstance(data, Mapping):
            items = fx.first_present(data, fx.LIST_ITEMS) or []
            total = fx.first_present(data, fx.LIST_TOTAL)
        else:
            raise UpstreamPayloadError("Tarot API returned a non-JSON card list", "tarot")
        if not isinstance(items, list):
            raise UpstreamPayloadError("Tarot card list is not an array", "tarot")

        cards = [card_from_payload(item) for item in items]
        count = _as_int(total) if total is not None else len(cards)
        if count is None or count < 0:
            raise UpstreamPayloadError(f"Invalid card list total {total!r}", "tarot")
        return CardList(
            cards=cards,
            total=count,
            limit=limit,
            offset=offset,
        )

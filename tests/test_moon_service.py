"""Tests for the moon service."""

from datetime import date, datetime, timedelta

import pytest
import respx
from httpx import Response

from celestial_proxy.config import Settings
from celestial_proxy.services.astronomy import ClientAddress, Coordinates, PlaceQuery
from celestial_proxy.services.moon import MoonService
from celestial_proxy.services.upstream import (
    InvalidRequestError,
    UpstreamPayloadError,
    UpstreamRejectedError,
)
from celestial_proxy.storage.moon_store import MoonStore

BOISE = {
    "phase": "Full Moon",
    "moonrise": "17:23",
    "moonset": "02:41",
    "location": {"lat": 43.615, "lon": -116.202, "city": "Boise"},
}


class TestMoonService:
    """Tests for MoonService.get_moon_for."""

    @respx.mock
    @pytest.mark.asyncio
    async def test_two_calls_share_one_row(
        self, settings: Settings, moon_service: MoonService, moon_store: MoonStore
    ) -> None:
        """Test the Boise scenario: two calls, one row keyed (2025-08-23, 43.62, -116.2)."""
        respx.get(settings.moon_api_url).mock(return_value=Response(200, json=BOISE))

        first = await moon_service.get_moon_for("2025-08-23", Coordinates(43.615, -116.202))
        second = await moon_service.get_moon_for("2025-08-23", Coordinates(43.615, -116.202))

        assert first.phase == "Full Moon"
        assert second.phase == "Full Moon"
        assert await moon_store.count_rows() == 1
        row = await moon_store.find_row(date(2025, 8, 23), 43.62, -116.2)
        assert row is not None
        assert (second.forDate, second.lat, second.lon) == ("2025-08-23", 43.62, -116.2)

    @respx.mock
    @pytest.mark.asyncio
    async def test_snapshot_fields(self, settings: Settings, moon_service: MoonService) -> None:
        """Test rise/set become timestamps and labels come from the upstream."""
        route = respx.get(settings.moon_api_url).mock(return_value=Response(200, json=BOISE))

        snapshot = await moon_service.get_moon_for("2025-08-23", Coordinates(43.615, -116.202))

        assert snapshot.moonrise == datetime(2025, 8, 23, 17, 23)
        assert snapshot.moonset == datetime(2025, 8, 23, 2, 41)
        assert snapshot.location.city == "Boise"
        assert snapshot.location.lat == 43.615
        params = route.calls.last.request.url.params
        assert params["apiKey"] == "test-key"
        assert params["date"] == "2025-08-23"
        assert params["lat"] == "43.62"
        assert params["long"] == "-116.2"

    @respx.mock
    @pytest.mark.asyncio
    async def test_fresh_row_still_refreshes_labels(
        self, settings: Settings, moon_service: MoonService, moon_store: MoonStore
    ) -> None:
        """Test a durable hit keeps the row's phase but takes labels from a new upstream call."""
        route = respx.get(settings.moon_api_url).mock(
            side_effect=[
                Response(200, json=BOISE),
                Response(
                    200,
                    json={
                        **BOISE,
                        "phase": "Waning Gibbous",
                        "moon_zodiac": "Pisces",
                        "location": {**BOISE["location"], "city": "Boise City"},
                    },
                ),
            ]
        )

        await moon_service.get_moon_for("2025-08-23", Coordinates(43.615, -116.202))
        second = await moon_service.get_moon_for("2025-08-23", Coordinates(43.615, -116.202))

        assert route.call_count == 2
        assert second.phase == "Full Moon"
        assert second.zodiacSign == "Pisces"
        assert second.location.city == "Boise City"

    @respx.mock
    @pytest.mark.asyncio
    async def test_stale_row_is_overwritten(
        self,
        settings: Settings,
        moon_service: MoonService,
        moon_store: MoonStore,
        wall_clock,
    ) -> None:
        """Test a row older than 24h is replaced in place with new upstream data."""
        respx.get(settings.moon_api_url).mock(
            side_effect=[
                Response(200, json=BOISE),
                Response(200, json={**BOISE, "phase": "Waning Gibbous"}),
            ]
        )

        await moon_service.get_moon_for("2025-08-23", Coordinates(43.615, -116.202))
        wall_clock.advance(timedelta(hours=24, seconds=1))
        second = await moon_service.get_moon_for("2025-08-23", Coordinates(43.615, -116.202))

        assert second.phase == "Waning Gibbous"
        assert await moon_store.count_rows() == 1

    @respx.mock
    @pytest.mark.asyncio
    async def test_jittered_coordinates_share_a_row(
        self, settings: Settings, moon_service: MoonService, moon_store: MoonStore
    ) -> None:
        """Test nearby coordinates without an upstream echo reuse the same row."""
        respx.get(settings.moon_api_url).mock(
            return_value=Response(200, json={"moon_phase": "New Moon"})
        )

        await moon_service.get_moon_for("2025-08-23", Coordinates(43.6123, -116.2011))
        snapshot = await moon_service.get_moon_for("2025-08-23", Coordinates(43.6119, -116.1991))

        assert (snapshot.lat, snapshot.lon) == (43.61, -116.2)
        assert await moon_store.count_rows() == 1

    @respx.mock
    @pytest.mark.asyncio
    async def test_place_is_resolved_by_upstream(
        self, settings: Settings, moon_service: MoonService
    ) -> None:
        """Test a place name is sent as-is and coordinates come back from the upstream."""
        route = respx.get(settings.moon_api_url).mock(
            return_value=Response(
                200,
                json={
                    "moon_phase": "Waning Crescent",
                    "moon_status": "-",
                    "location": {
                        "latitude": "48.85661",
                        "longitude": "2.35222",
                        "city": "Paris",
                        "country_name": "France",
                        "elevation": "35",
                    },
                },
            )
        )

        snapshot = await moon_service.get_moon_for("2025-08-23", PlaceQuery(" Paris, FR "))

        assert route.calls.last.request.url.params["location"] == "Paris, FR"
        assert (snapshot.lat, snapshot.lon) == (48.86, 2.35)
        assert snapshot.phase == "Waning Crescent"
        assert snapshot.location.country == "France"
        assert snapshot.location.elevationMeters == 35.0

    @respx.mock
    @pytest.mark.asyncio
    async def test_client_ip_is_forwarded(
        self, settings: Settings, moon_service: MoonService
    ) -> None:
        """Test the IP form reaches the upstream."""
        route = respx.get(settings.moon_api_url).mock(
            return_value=Response(200, json={"location": {"latitude": 1.0, "longitude": 2.0}})
        )

        await moon_service.get_moon_for(date(2025, 8, 23), ClientAddress("203.0.113.7"))

        assert route.calls.last.request.url.params["ip"] == "203.0.113.7"

    @respx.mock
    @pytest.mark.asyncio
    async def test_malformed_times_are_null(
        self, settings: Settings, moon_service: MoonService
    ) -> None:
        """Test placeholder times are stored as null rather than failing."""
        respx.get(settings.moon_api_url).mock(
            return_value=Response(200, json={**BOISE, "moonrise": "-:-", "moonset": None})
        )

        snapshot = await moon_service.get_moon_for("2025-08-23", Coordinates(43.615, -116.202))

        assert snapshot.moonrise is None
        assert snapshot.moonset is None

    @pytest.mark.asyncio
    async def test_blank_place_is_rejected_before_io(self, moon_service: MoonService) -> None:
        """Test a blank location raises InvalidRequestError without a network call."""
        with respx.mock(assert_all_called=False) as mock:
            route = mock.get(url__regex=r".*").mock(return_value=Response(200, json={}))

            with pytest.raises(InvalidRequestError):
                await moon_service.get_moon_for("2025-08-23", PlaceQuery("   "))

            assert route.call_count == 0

    @pytest.mark.asyncio
    async def test_malformed_date_is_rejected(self, moon_service: MoonService) -> None:
        """Test a malformed date string is an invalid request."""
        with pytest.raises(InvalidRequestError):
            await moon_service.get_moon_for("23/08/2025", Coordinates(43.6, -116.2))

    @respx.mock
    @pytest.mark.asyncio
    async def test_upstream_error_propagates_and_nothing_is_stored(
        self, settings: Settings, moon_service: MoonService, moon_store: MoonStore
    ) -> None:
        """Test an upstream rejection surfaces with status and body attached."""
        respx.get(settings.moon_api_url).mock(
            return_value=Response(401, json={"message": "Invalid API key"})
        )

        with pytest.raises(UpstreamRejectedError) as exc_info:
            await moon_service.get_moon_for("2025-08-23", Coordinates(43.615, -116.202))

        assert exc_info.value.status_code == 401
        assert exc_info.value.body == {"message": "Invalid API key"}
        assert await moon_store.count_rows() == 0

    @respx.mock
    @pytest.mark.asyncio
    async def test_unresolvable_place(self, settings: Settings, moon_service: MoonService) -> None:
        """Test a place without coordinates in the response is a payload error."""
        respx.get(settings.moon_api_url).mock(
            return_value=Response(200, json={"moon_phase": "Full Moon"})
        )

        with pytest.raises(UpstreamPayloadError):
            await moon_service.get_moon_for("2025-08-23", PlaceQuery("Atlantis"))

    @pytest.mark.parametrize(
        "location",
        [
            {"latitude": "95.0", "longitude": "10"},
            {"latitude": "45.0", "longitude": "-181"},
            {"latitude": "NaN", "longitude": "10"},
        ],
    )
    @pytest.mark.asyncio
    async def test_invalid_upstream_coordinates_are_not_stored(
        self,
        settings: Settings,
        moon_service: MoonService,
        moon_store: MoonStore,
        location: dict[str, str],
    ) -> None:
        """Test out-of-range or non-finite echoed coordinates fail before the store."""
        with respx.mock:
            respx.get(settings.moon_api_url).mock(
                return_value=Response(200, json={"moon_phase": "Full Moon", "location": location})
            )

            with pytest.raises(UpstreamPayloadError):
                await moon_service.get_moon_for("2025-08-23", PlaceQuery("Nowhere"))

        assert await moon_store.count_rows() == 0

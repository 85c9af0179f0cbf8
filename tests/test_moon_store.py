"""Tests for the durable moon store."""

from datetime import date, datetime, timedelta

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker

from celestial_proxy.config import ConfigurationError
from celestial_proxy.storage.moon_store import MoonStore

DAY = date(2025, 8, 23)


class TestMoonStore:
    """Tests for MoonStore."""

    @pytest.mark.asyncio
    async def test_upsert_inserts_row(self, moon_store: MoonStore) -> None:
        """Test the first upsert creates a row."""
        row = await moon_store.upsert_row(
            DAY, 43.62, -116.2, "Full Moon", datetime(2025, 8, 23, 17, 23), None
        )

        assert row.id is not None
        assert row.phase == "Full Moon"
        assert row.moonrise == datetime(2025, 8, 23, 17, 23)
        assert row.moonset is None
        assert await moon_store.count_rows() == 1

    @pytest.mark.asyncio
    async def test_upsert_is_idempotent_per_key(self, moon_store: MoonStore) -> None:
        """Test two upserts on one key leave one row with the latest phase."""
        await moon_store.upsert_row(DAY, 43.62, -116.2, "Waxing Gibbous", None, None)
        await moon_store.upsert_row(DAY, 43.62, -116.2, "Full Moon", None, None)

        assert await moon_store.count_rows() == 1
        row = await moon_store.find_row(DAY, 43.62, -116.2)
        assert row is not None
        assert row.phase == "Full Moon"

    @pytest.mark.asyncio
    async def test_distinct_keys_get_distinct_rows(self, moon_store: MoonStore) -> None:
        """Test date and coordinates all take part in the key."""
        await moon_store.upsert_row(DAY, 43.62, -116.2, "Full Moon", None, None)
        await moon_store.upsert_row(DAY, 43.63, -116.2, "Full Moon", None, None)
        await moon_store.upsert_row(date(2025, 8, 24), 43.62, -116.2, "Waning", None, None)

        assert await moon_store.count_rows() == 3

    @pytest.mark.asyncio
    async def test_missing_row(self, moon_store: MoonStore) -> None:
        """Test lookup of an unknown key."""
        assert await moon_store.find_fresh_row(DAY, 1.0, 2.0) is None

    @pytest.mark.asyncio
    async def test_row_younger_than_window_is_fresh(
        self, moon_store: MoonStore, wall_clock
    ) -> None:
        """Test a row aged 23h59m is still served."""
        await moon_store.upsert_row(DAY, 43.62, -116.2, "Full Moon", None, None)
        wall_clock.advance(timedelta(hours=23, minutes=59))

        row = await moon_store.find_fresh_row(DAY, 43.62, -116.2)

        assert row is not None
        assert row.phase == "Full Moon"

    @pytest.mark.asyncio
    async def test_row_exactly_at_window_is_fresh(
        self, moon_store: MoonStore, wall_clock
    ) -> None:
        """Test the window is inclusive at exactly 24h."""
        await moon_store.upsert_row(DAY, 43.62, -116.2, "Full Moon", None, None)
        wall_clock.advance(timedelta(hours=24))

        assert await moon_store.find_fresh_row(DAY, 43.62, -116.2) is not None

    @pytest.mark.asyncio
    async def test_row_older_than_window_is_stale(
        self, moon_store: MoonStore, wall_clock
    ) -> None:
        """Test a row aged 24h + 1s is not served."""
        await moon_store.upsert_row(DAY, 43.62, -116.2, "Full Moon", None, None)
        wall_clock.advance(timedelta(hours=24, seconds=1))

        assert await moon_store.find_fresh_row(DAY, 43.62, -116.2) is None
        # Still present, only stale
        assert await moon_store.find_row(DAY, 43.62, -116.2) is not None

    @pytest.mark.asyncio
    async def test_upsert_resets_age(self, moon_store: MoonStore, wall_clock) -> None:
        """Test overwriting a stale row makes it fresh again."""
        await moon_store.upsert_row(DAY, 43.62, -116.2, "Full Moon", None, None)
        wall_clock.advance(timedelta(hours=30))
        await moon_store.upsert_row(DAY, 43.62, -116.2, "Waning Gibbous", None, None)

        row = await moon_store.find_fresh_row(DAY, 43.62, -116.2)

        assert row is not None
        assert row.phase == "Waning Gibbous"
        assert await moon_store.count_rows() == 1

    def test_unbound_session_factory_is_rejected(self) -> None:
        """Test the store refuses a factory without a usable database up front."""
        with pytest.raises(ConfigurationError, match="dialect"):
            MoonStore(async_sessionmaker())

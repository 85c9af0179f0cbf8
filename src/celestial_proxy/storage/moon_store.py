"""Durable, coordinate-keyed store for moon data."""

from collections.abc import Callable
from datetime import UTC, date, datetime, timedelta
from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from celestial_proxy.config import ConfigurationError
from celestial_proxy.storage.models import MoonData

logger = structlog.get_logger()

# Dialects with INSERT ... ON CONFLICT DO UPDATE
_UPSERT_INSERTS: dict[str, Callable[..., Any]] = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _utcnow() -> datetime:
    return datetime.now(UTC)


class MoonStore:
    """Moon rows keyed by ``(for_date, lat, lon)`` with a freshness window.

    At most one row exists per key: writes go through an atomic upsert, so
    concurrent writers resolve to last-write-wins inside the database.
    Database errors propagate unchanged.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        freshness: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize store with a session factory and freshness window.

        Raises:
            ConfigurationError: If the factory is unbound or its database has
                no ``INSERT ... ON CONFLICT`` support
        """
        bind = session_factory.kw.get("bind")
        dialect = bind.dialect.name if bind is not None else None
        insert = _UPSERT_INSERTS.get(dialect) if dialect is not None else None
        if insert is None:
            raise ConfigurationError(f"Moon store does not support database dialect {dialect!r}")

        self._insert = insert
        self._session_factory = session_factory
        self._freshness = freshness
        self._clock = clock

    def is_fresh(self, row: MoonData) -> bool:
        """True if the row is no older than the freshness window."""
        created_at = row.created_at
        if created_at.tzinfo is None:
            # SQLite hands back naive timestamps; they were written in UTC
            created_at = created_at.replace(tzinfo=UTC)
        return self._clock() - created_at <= self._freshness

    async def find_row(self, for_date: date, lat: float, lon: float) -> MoonData | None:
        """Return the row for the key regardless of age."""
        stmt = (
            select(MoonData)
            .where(MoonData.for_date == for_date, MoonData.lat == lat, MoonData.lon == lon)
            .limit(1)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def find_fresh_row(self, for_date: date, lat: float, lon: float) -> MoonData | None:
        """Return the row for the key if it is still fresh, else None."""
        row = await self.find_row(for_date, lat, lon)
        if row is None:
            return None
        if not self.is_fresh(row):
            logger.info(
                "Stale moon row",
                for_date=str(for_date),
                lat=lat,
                lon=lon,
                created_at=row.created_at.isoformat(),
            )
            return None
        return row

    async def upsert_row(
        self,
        for_date: date,
        lat: float,
        lon: float,
        phase: str | None,
        moonrise: datetime | None,
        moonset: datetime | None,
    ) -> MoonData:
        """Insert the row for the key, or overwrite it and reset its age."""
        async with self._session_factory() as session:
            stmt = self._insert(MoonData).values(
                for_date=for_date,
                lat=lat,
                lon=lon,
                phase=phase,
                moonrise=moonrise,
                moonset=moonset,
                created_at=self._clock(),
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[MoonData.for_date, MoonData.lat, MoonData.lon],
                set_={
                    "phase": stmt.excluded.phase,
                    "moonrise": stmt.excluded.moonrise,
                    "moonset": stmt.excluded.moonset,
                    "created_at": stmt.excluded.created_at,
                },
            ).returning(MoonData)

            result = await session.scalars(stmt, execution_options={"populate_existing": True})
            row = result.one()
            await session.commit()
            return row

    async def count_rows(self) -> int:
        """Number of rows in the store."""
        async with self._session_factory() as session:
            result = await session.execute(select(func.count()).select_from(MoonData))
            return result.scalar_one()

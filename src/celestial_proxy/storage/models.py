"""SQLAlchemy models for the durable moon cache."""

from datetime import date, datetime

from sqlalchemy import Date, DateTime, Index, Integer, Numeric, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class MoonData(Base):
    """One astronomy result per date and rounded coordinate pair.

    ``created_at`` is reset on every upsert and drives the freshness window.
    """

    __tablename__ = "moon_data"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    for_date: Mapped[date] = mapped_column(Date, nullable=False)
    lat: Mapped[float] = mapped_column(Numeric(9, 6, asdecimal=False), nullable=False)
    lon: Mapped[float] = mapped_column(Numeric(9, 6, asdecimal=False), nullable=False)
    phase: Mapped[str | None] = mapped_column(Text, nullable=True)
    moonrise: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    moonset: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("for_date", "lat", "lon", name="uq_moon_data_date_lat_lon"),
        Index("idx_moon_date", "for_date"),
    )

    def __repr__(self) -> str:
        return f"<MoonData(for_date={self.for_date}, lat={self.lat}, lon={self.lon})>"

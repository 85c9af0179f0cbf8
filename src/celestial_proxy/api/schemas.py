"""API request and response schemas."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from celestial_proxy.services.astronomy import (
    ClientAddress,
    Coordinates,
    LocationSpec,
    PlaceQuery,
)


class MoonLocation(BaseModel):
    """Resolved location with human-readable labels."""

    lat: float = Field(..., ge=-90, le=90, description="Latitude")
    lon: float = Field(..., ge=-180, le=180, description="Longitude")
    city: str | None = None
    state: str | None = None
    country: str | None = None
    locality: str | None = None
    elevationMeters: float | None = None  # noqa: N815


class MoonSnapshot(BaseModel):
    """Moon data for one date at one (rounded) coordinate pair."""

    forDate: str = Field(..., description="Date as YYYY-MM-DD")  # noqa: N815
    lat: float = Field(..., description="Latitude rounded to the cache-key precision")
    lon: float = Field(..., description="Longitude rounded to the cache-key precision")
    phase: str | None = Field(default=None, description="Moon phase, e.g. 'Waxing Gibbous'")
    moonrise: datetime | None = Field(default=None, description="Local moonrise time")
    moonset: datetime | None = Field(default=None, description="Local moonset time")
    zodiacSign: str | None = Field(default=None, description="Moon zodiac sign")  # noqa: N815
    location: MoonLocation
    timezone: str | None = Field(default=None, description="IANA timezone of the location")


class MoonQuery(BaseModel):
    """Location part of a moon query: exactly one of lat/lon, location or useClientIp."""

    lat: float | None = Field(default=None, ge=-90, le=90)
    lon: float | None = Field(default=None, ge=-180, le=180)
    location: str | None = None
    useClientIp: Literal["1"] | None = None  # noqa: N815

    @field_validator("location")
    @classmethod
    def location_not_blank(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        if not value:
            raise ValueError("location must not be empty")
        return value

    @model_validator(mode="after")
    def exactly_one_form(self) -> "MoonQuery":
        has_coords = self.lat is not None or self.lon is not None
        forms = [has_coords, self.location is not None, self.useClientIp is not None]
        if sum(forms) != 1:
            raise ValueError("Provide exactly one of lat/lon, location or useClientIp=1")
        if has_coords and (self.lat is None or self.lon is None):
            raise ValueError("lat and lon must be given together")
        return self

    def to_location_spec(self, client_ip: str | None = None) -> LocationSpec:
        """Convert to the location spec understood by the moon service."""
        if self.lat is not None and self.lon is not None:
            return Coordinates(lat=self.lat, lon=self.lon)
        if self.location is not None:
            return PlaceQuery(place=self.location)
        return ClientAddress(ip=client_ip or "")


class TarotCard(BaseModel):
    """Tarot card reference data."""

    id: int = Field(..., gt=0, description="Card id")
    name: str = Field(..., description="Card name")
    suit: str | None = Field(default=None, description="Suit; None for the Major Arcana")
    arcana: Literal["Major", "Minor"]
    uprightMeaning: str | None = None  # noqa: N815
    reversedMeaning: str | None = None  # noqa: N815
    imageUrl: str | None = None  # noqa: N815


class CardOfDay(BaseModel):
    """Deterministic daily card."""

    card: TarotCard
    date: str | None = Field(default=None, description="Date the card was drawn for")


class DrawResult(BaseModel):
    """Yes/No/Maybe draw."""

    answer: Literal["Yes", "No", "Maybe"]
    reason: str | None = None
    card: TarotCard | None = None


class CardList(BaseModel):
    """Page of tarot cards."""

    cards: list[TarotCard]
    total: int
    limit: int
    offset: int


class YesNoRequest(BaseModel):
    """Optional question for a yes/no draw."""

    question: str | None = Field(default=None, min_length=1, max_length=200)


class ErrorDetail(BaseModel):
    """Error detail."""

    code: str = Field(..., description="Error code")
    message: str = Field(..., description="Error message")


class ErrorResponse(BaseModel):
    """Error response."""

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(..., description="Health status")


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    status: str = Field(..., description="Readiness status")
    checks: dict[str, str] = Field(default_factory=dict, description="Component checks")

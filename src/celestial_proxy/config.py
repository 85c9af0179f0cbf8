"""Application configuration management."""

from functools import lru_cache

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(RuntimeError):
    """Raised at startup when required configuration is missing or invalid."""


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Server settings
    app_host: str = Field(default="0.0.0.0", description="Server bind host")
    app_port: int = Field(default=8080, description="Server bind port")
    trust_proxy: bool = Field(
        default=False,
        description="Take the client IP from the first X-Forwarded-For hop",
    )

    # Database settings
    database_url: str = Field(
        ...,
        min_length=1,
        description="SQLAlchemy async database URL for the durable moon cache",
    )

    # Astronomy upstream settings
    moon_api_url: str = Field(
        default="https://api.ipgeolocation.io/astronomy",
        description="Astronomy API endpoint",
    )
    moon_api_key: str = Field(..., min_length=1, description="Astronomy API key")
    moon_timeout_seconds: float = Field(
        default=15.0,
        description="Astronomy request timeout in seconds",
        ge=0.1,
        le=60.0,
    )
    moon_freshness_hours: int = Field(
        default=24,
        description="Maximum age of a durable moon row before it is refetched",
        ge=1,
        le=24 * 7,
    )

    # Tarot upstream settings
    tarot_api_base: str = Field(..., min_length=1, description="Tarot API base URL")
    tarot_timeout_seconds: float = Field(
        default=15.0,
        description="Tarot request timeout in seconds",
        ge=0.1,
        le=60.0,
    )

    # Retry settings
    retry_backoff_seconds: float = Field(
        default=0.3,
        description="Fixed delay before the single retry of a transient failure",
        ge=0.0,
        le=10.0,
    )

    # Cache settings
    cache_max_size: int = Field(
        default=10000,
        description="Safety cap on in-memory cache entries",
        ge=1,
        le=1000000,
    )
    tarot_daily_ttl_seconds: int = Field(default=24 * 3600, ge=1)
    tarot_cards_ttl_seconds: int = Field(default=6 * 3600, ge=1)
    tarot_card_ttl_seconds: int = Field(default=24 * 3600, ge=1)

    # Logging settings
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_format: str = Field(
        default="json",
        description="Log format (json or text)",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Raises:
        ConfigurationError: If a required setting (API key, upstream base URL,
            database URL) is absent. This is meant to stop the process at
            startup rather than fail individual requests.
    """
    try:
        return Settings()
    except ValidationError as e:
        fields = ", ".join(
            ".".join(str(part) for part in err["loc"]).upper() for err in e.errors()
        )
        raise ConfigurationError(f"Invalid or missing configuration: {fields}") from e

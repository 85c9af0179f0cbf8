"""API route definitions."""

from datetime import UTC, datetime
from typing import Annotated

import structlog
from fastapi import APIRouter, HTTPException, Query, Request, status
from pydantic import ValidationError

from celestial_proxy.api.dependencies import (
    CacheDep,
    EngineDep,
    MoonServiceDep,
    SettingsDep,
    TarotServiceDep,
)
from celestial_proxy.api.schemas import (
    CardList,
    CardOfDay,
    DrawResult,
    ErrorDetail,
    ErrorResponse,
    HealthResponse,
    MoonQuery,
    MoonSnapshot,
    ReadinessResponse,
    TarotCard,
    YesNoRequest,
)
from celestial_proxy.config import Settings
from celestial_proxy.services.astronomy import LocationSpec
from celestial_proxy.services.moon import MoonService
from celestial_proxy.services.timezone import resolve_timezone
from celestial_proxy.services.upstream import (
    InvalidRequestError,
    UpstreamError,
    UpstreamRejectedError,
    UpstreamTimeoutError,
)
from celestial_proxy.storage.database import ping

logger = structlog.get_logger()

# API routers
moon_router = APIRouter(prefix="/api/v1/moon", tags=["moon"])
tarot_router = APIRouter(prefix="/api/v1/tarot", tags=["tarot"])

# Health router for health checks
health_router = APIRouter(prefix="/health", tags=["health"])

ERROR_RESPONSES: dict[int | str, dict[str, object]] = {
    400: {"model": ErrorResponse, "description": "Invalid request"},
    502: {"model": ErrorResponse, "description": "Upstream API error"},
    504: {"model": ErrorResponse, "description": "Upstream timeout"},
}


def _error(status_code: int, code: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail=ErrorResponse(error=ErrorDetail(code=code, message=message)).model_dump(),
    )


def to_http_exception(
    error: InvalidRequestError | UpstreamError,
    *,
    mirror_client_errors: bool = False,
) -> HTTPException:
    """Map a service error onto an HTTP error response.

    Upstream 4xx answers are passed through only where the caller can act on
    them (e.g. an unknown card id); otherwise they are a gateway failure.
    """
    if isinstance(error, InvalidRequestError):
        return _error(status.HTTP_400_BAD_REQUEST, "INVALID_REQUEST", str(error))
    if isinstance(error, UpstreamTimeoutError):
        return _error(status.HTTP_504_GATEWAY_TIMEOUT, "UPSTREAM_TIMEOUT", str(error))
    if (
        isinstance(error, UpstreamRejectedError)
        and mirror_client_errors
        and 400 <= error.status_code < 500
    ):
        code = "NOT_FOUND" if error.status_code == 404 else "UPSTREAM_REJECTED"
        return _error(error.status_code, code, str(error))
    return _error(status.HTTP_502_BAD_GATEWAY, "UPSTREAM_ERROR", str(error))


def _log_failure(error: InvalidRequestError | UpstreamError, **context: object) -> None:
    if isinstance(error, InvalidRequestError):
        logger.info("Invalid request", error=str(error), **context)
        return
    logger.error(
        "Upstream request failed",
        upstream=error.upstream,
        status_code=getattr(error, "status_code", None),
        body=getattr(error, "body", None),
        error=str(error),
        **context,
    )


def _client_ip(request: Request, settings: Settings) -> str | None:
    if settings.trust_proxy:
        forwarded = request.headers.get("x-forwarded-for", "")
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client else None


def _parse_moon_query(query: dict[str, str | None], client_ip: str | None) -> LocationSpec:
    try:
        return MoonQuery.model_validate(query).to_location_spec(client_ip)
    except ValidationError as e:
        message = "; ".join(err["msg"] for err in e.errors())
        raise _error(status.HTTP_400_BAD_REQUEST, "INVALID_REQUEST", message) from e


async def _moon_with_timezone(
    moon_service: MoonService,
    when: str | datetime,
    location: LocationSpec,
) -> MoonSnapshot:
    try:
        snapshot = await moon_service.get_moon_for(when, location)
    except (InvalidRequestError, UpstreamError) as e:
        _log_failure(e, location=repr(location))
        raise to_http_exception(e) from e

    snapshot.timezone = resolve_timezone(snapshot.location.lat, snapshot.location.lon)
    return snapshot


@moon_router.get("/today", response_model=MoonSnapshot, responses=ERROR_RESPONSES)
async def moon_today(
    request: Request,
    settings: SettingsDep,
    moon_service: MoonServiceDep,
    lat: Annotated[str | None, Query(description="Latitude")] = None,
    lon: Annotated[str | None, Query(description="Longitude")] = None,
    location: Annotated[str | None, Query(description="Free-text place")] = None,
    use_client_ip: Annotated[
        str | None, Query(alias="useClientIp", description="Set to 1 to locate by client IP")
    ] = None,
) -> MoonSnapshot:
    """Get today's moon data for coordinates, a place name or the caller's IP."""
    spec = _parse_moon_query(
        {"lat": lat, "lon": lon, "location": location, "useClientIp": use_client_ip},
        _client_ip(request, settings),
    )
    return await _moon_with_timezone(moon_service, datetime.now(UTC), spec)


@moon_router.get("/on", response_model=MoonSnapshot, responses=ERROR_RESPONSES)
async def moon_on(
    moon_service: MoonServiceDep,
    date: Annotated[str | None, Query(description="Date as YYYY-MM-DD")] = None,
    lat: Annotated[str | None, Query(description="Latitude")] = None,
    lon: Annotated[str | None, Query(description="Longitude")] = None,
    location: Annotated[str | None, Query(description="Free-text place")] = None,
) -> MoonSnapshot:
    """Get moon data for a specific date and location."""
    if not date:
        raise _error(status.HTTP_400_BAD_REQUEST, "INVALID_REQUEST", "date is required")
    spec = _parse_moon_query({"lat": lat, "lon": lon, "location": location}, None)
    return await _moon_with_timezone(moon_service, date, spec)


@tarot_router.get("/daily", response_model=CardOfDay, responses=ERROR_RESPONSES)
async def tarot_daily(
    tarot_service: TarotServiceDep,
    seed: Annotated[str | None, Query(description="Stable seed")] = None,
    date: Annotated[str | None, Query(description="Date as YYYY-MM-DD")] = None,
) -> CardOfDay:
    """Get the deterministic card of the day. Cached for 24 hours."""
    try:
        return await tarot_service.get_card_of_day(seed=seed, date=date)
    except (InvalidRequestError, UpstreamError) as e:
        _log_failure(e, seed=seed, date=date)
        raise to_http_exception(e) from e


@tarot_router.get("/yesno", response_model=DrawResult, responses=ERROR_RESPONSES)
async def tarot_yes_no(tarot_service: TarotServiceDep) -> DrawResult:
    """Draw a Yes/No/Maybe without a question."""
    try:
        return await tarot_service.draw_yes_no()
    except (InvalidRequestError, UpstreamError) as e:
        _log_failure(e)
        raise to_http_exception(e) from e


@tarot_router.post("/yesno", response_model=DrawResult, responses=ERROR_RESPONSES)
async def tarot_yes_no_question(
    tarot_service: TarotServiceDep,
    body: YesNoRequest | None = None,
) -> DrawResult:
    """Draw a Yes/No/Maybe, optionally for a question (1-200 characters)."""
    question = body.question if body is not None else None
    try:
        return await tarot_service.draw_yes_no(question)
    except (InvalidRequestError, UpstreamError) as e:
        _log_failure(e)
        raise to_http_exception(e) from e


@tarot_router.get("/cards", response_model=CardList, responses=ERROR_RESPONSES)
async def tarot_cards(
    tarot_service: TarotServiceDep,
    arcana: Annotated[str | None, Query(description="Major or Minor")] = None,
    suit: Annotated[str | None, Query(description="Cups, Swords, Wands or Pentacles")] = None,
    q: Annotated[str | None, Query(description="Name search")] = None,
    limit: Annotated[str | None, Query(description="Page size, 1-200")] = None,
    offset: Annotated[str | None, Query(description="Page offset, 0-10000")] = None,
) -> CardList:
    """List tarot cards. Cached for 6 hours per query."""
    try:
        return await tarot_service.get_cards(
            arcana=arcana, suit=suit, q=q, limit=limit, offset=offset
        )
    except (InvalidRequestError, UpstreamError) as e:
        _log_failure(e, arcana=arcana, suit=suit, q=q)
        raise to_http_exception(e) from e


@tarot_router.get(
    "/cards/{card_id}",
    response_model=TarotCard,
    responses={**ERROR_RESPONSES, 404: {"model": ErrorResponse, "description": "Unknown card"}},
)
async def tarot_card(tarot_service: TarotServiceDep, card_id: str) -> TarotCard:
    """Get a single tarot card by positive integer id. Cached for 24 hours."""
    try:
        number = int(card_id)
    except ValueError as e:
        raise _error(status.HTTP_400_BAD_REQUEST, "INVALID_REQUEST", "Invalid id") from e

    try:
        return await tarot_service.get_card_by_id(number)
    except (InvalidRequestError, UpstreamError) as e:
        _log_failure(e, card_id=card_id)
        raise to_http_exception(e, mirror_client_errors=True) from e


@health_router.get("/live", response_model=HealthResponse)
async def liveness() -> HealthResponse:
    """Liveness probe - checks if the service is running."""
    return HealthResponse(status="ok")


@health_router.get("/ready", response_model=ReadinessResponse)
async def readiness(cache: CacheDep, engine: EngineDep) -> ReadinessResponse:
    """Readiness probe - checks the cache and the database."""
    cache_status = "ok" if cache.is_healthy() else "unhealthy"

    try:
        database_status = "ok" if await ping(engine) else "unhealthy"
    except Exception as e:
        logger.error("Database ping failed", error=str(e))
        database_status = "unhealthy"

    checks = {"cache": cache_status, "database": database_status}
    overall_status = "ok" if all(value == "ok" for value in checks.values()) else "unhealthy"

    response = ReadinessResponse(status=overall_status, checks=checks)

    if overall_status != "ok":
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=response.model_dump(),
        )

    return response

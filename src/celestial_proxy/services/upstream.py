"""Shared HTTP client for third-party JSON APIs."""

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import httpx
import structlog
from prometheus_client import Counter, Histogram

logger = structlog.get_logger()

# Responses worth a second attempt
TRANSIENT_STATUSES = frozenset({429, 502, 503, 504})


class InvalidRequestError(Exception):
    """Raised when caller input is unusable; detected before any I/O."""


class UpstreamError(Exception):
    """Base exception for upstream API failures."""

    def __init__(self, message: str, upstream: str) -> None:
        super().__init__(message)
        self.upstream = upstream


class UpstreamTimeoutError(UpstreamError):
    """Raised when the upstream does not answer within the configured window."""


class UpstreamUnreachableError(UpstreamError):
    """Raised on transport failures (DNS, refused connection, TLS)."""


class UpstreamRejectedError(UpstreamError):
    """Raised when the upstream answers with a non-2xx status."""

    def __init__(self, message: str, upstream: str, status_code: int, body: Any = None) -> None:
        super().__init__(message, upstream)
        self.status_code = status_code
        self.body = body


class UpstreamPayloadError(UpstreamError):
    """Raised when a successful upstream response lacks required data."""


# Metrics
upstream_requests = Counter(
    "upstream_requests_total",
    "Total upstream API requests",
    ["upstream", "status"],
)
upstream_duration = Histogram(
    "upstream_request_duration_seconds",
    "Upstream request duration in seconds",
    ["upstream"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 15.0],
)


@dataclass(frozen=True)
class MethodFallback:
    """Replacement method (and JSON body) for a request the upstream refused."""

    method: str
    json: Any = None


# (method, path, rejected status) -> fallback
QuirkTable = Mapping[tuple[str, str, int], MethodFallback]


def is_transient(error: UpstreamError) -> bool:
    """Whether a failure is worth the single retry."""
    if isinstance(error, UpstreamTimeoutError | UpstreamUnreachableError):
        return True
    return isinstance(error, UpstreamRejectedError) and error.status_code in TRANSIENT_STATUSES


class UpstreamClient:
    """HTTP client for one upstream JSON API.

    Owns only the wire exchange: URL building, timeout, one retry of
    transient failures and error classification. It never caches.
    """

    def __init__(
        self,
        name: str,
        base_url: str,
        timeout: float,
        *,
        retry_backoff: float = 0.3,
        quirks: QuirkTable | None = None,
    ) -> None:
        """Initialize client for the upstream at ``base_url``."""
        self.name = name
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._retry_backoff = retry_backoff
        self._quirks: QuirkTable = quirks or {}

    async def request(
        self,
        path: str = "",
        *,
        method: str = "GET",
        headers: Mapping[str, str] | None = None,
        params: Mapping[str, str | float] | None = None,
        json: Any = None,
        timeout: float | None = None,
    ) -> Any:
        """Issue a request and return the parsed body.

        JSON responses are decoded, anything else is returned as text.

        Raises:
            UpstreamTimeoutError: If the upstream does not answer in time
            UpstreamUnreachableError: If the upstream cannot be reached
            UpstreamRejectedError: If the upstream answers with a non-2xx status
        """
        method = method.upper()
        try:
            return await self._request_with_retry(path, method, headers, params, json, timeout)
        except UpstreamRejectedError as e:
            fallback = self._quirks.get((method, path, e.status_code))
            if fallback is None:
                raise
            logger.info(
                "Upstream refused method, using fallback",
                upstream=self.name,
                path=path,
                method=method,
                fallback_method=fallback.method,
                status_code=e.status_code,
            )
            return await self._request_with_retry(
                path, fallback.method, headers, params, fallback.json, timeout
            )

    async def _request_with_retry(
        self,
        path: str,
        method: str,
        headers: Mapping[str, str] | None,
        params: Mapping[str, str | float] | None,
        json: Any,
        timeout: float | None,
    ) -> Any:
        try:
            return await self._send(path, method, headers, params, json, timeout)
        except UpstreamError as e:
            if not is_transient(e):
                raise
            logger.warning(
                "Transient upstream failure, retrying once",
                upstream=self.name,
                path=path,
                method=method,
                error=str(e),
                backoff_seconds=self._retry_backoff,
            )
        await asyncio.sleep(self._retry_backoff)
        return await self._send(path, method, headers, params, json, timeout)

    async def _send(
        self,
        path: str,
        method: str,
        headers: Mapping[str, str] | None,
        params: Mapping[str, str | float] | None,
        json: Any,
        timeout: float | None,
    ) -> Any:
        url = f"{self._base_url}{path}"
        limit = timeout if timeout is not None else self._timeout
        request_headers = {"Accept": "application/json", **(headers or {})}

        with upstream_duration.labels(upstream=self.name).time():
            try:
                async with asyncio.timeout(limit):
                    async with httpx.AsyncClient(timeout=limit) as client:
                        response = await client.request(
                            method,
                            url,
                            headers=request_headers,
                            params=params,
                            json=json,
                        )
            except (TimeoutError, httpx.TimeoutException) as e:
                upstream_requests.labels(upstream=self.name, status="timeout").inc()
                raise UpstreamTimeoutError(
                    f"{self.name} API request timed out after {limit}s", self.name
                ) from e
            except httpx.RequestError as e:
                upstream_requests.labels(upstream=self.name, status="unreachable").inc()
                raise UpstreamUnreachableError(
                    f"{self.name} API request failed: {e}", self.name
                ) from e

        body = self._parse_body(response)

        if not response.is_success:
            upstream_requests.labels(upstream=self.name, status="error").inc()
            raise UpstreamRejectedError(
                self._error_message(response.status_code, body),
                self.name,
                response.status_code,
                body,
            )

        upstream_requests.labels(upstream=self.name, status="success").inc()
        return body

    @staticmethod
    def _parse_body(response: httpx.Response) -> Any:
        content_type = response.headers.get("content-type", "")
        if "application/json" not in content_type:
            return response.text
        try:
            return response.json()
        except ValueError:
            return {}

    def _error_message(self, status_code: int, body: Any) -> str:
        if isinstance(body, dict):
            for key in ("error", "message"):
                if isinstance(body.get(key), str) and body[key]:
                    return body[key]
        return f"{self.name} API error {status_code}"

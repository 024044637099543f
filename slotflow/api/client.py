"""
Resilient HTTP client.

Runs one logical request as up to config.retry_attempts physical
attempts. Each attempt gets a bearer token from the auth provider, a
hard deadline, and exactly one RequestAttemptMetric. Failures are
classified into the APIError taxonomy; only retryable kinds (network,
timeout, 408, 429, 502/503/504) are retried, with capped exponential
backoff:

    delay(attempt) = min(retry_delay * backoff_multiplier ** attempt, max_delay)

Usage:
    async with ResilientClient(config, auth=EnvTokenProvider()) as client:
        response = await client.post("/ai-suggestions/generate", body)
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import httpx

from slotflow.api.auth import AuthProvider, authorization_header
from slotflow.api.errors import (
    APIError,
    NetworkError,
    RequestTimeoutError,
    error_from_response,
)
from slotflow.lib.config import APIConfig
from slotflow.lib.stats import ApiMonitor, RequestAttemptMetric

logger = logging.getLogger(__name__)

# Status recorded for attempts that timed out before any response arrived
TIMEOUT_METRIC_STATUS = 408


@dataclass(frozen=True)
class HTTPResponse:
    """Normalised successful response."""
    data: Any
    status: int
    status_text: str
    headers: dict[str, str]


def parse_body(response: httpx.Response) -> Any:
    """Decode a body by content type: JSON, text, or raw bytes."""
    content_type = response.headers.get("content-type", "").lower()
    if "application/json" in content_type or content_type.split(";")[0].endswith("+json"):
        try:
            return response.json()
        except ValueError:
            return response.text
    if content_type.startswith("text/"):
        return response.text
    if not response.content:
        return None
    return response.content


class ResilientClient:
    """Async HTTP client with timeout, retry-with-backoff and per-attempt metrics."""

    def __init__(
        self,
        config: APIConfig,
        auth: Optional[AuthProvider] = None,
        on_metric: Optional[Callable[[RequestAttemptMetric], None]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            config: Base URL, timeout and retry settings
            auth: Supplies the bearer token before each attempt
            on_metric: Called once per physical attempt (defaults to self.monitor.record)
            transport: httpx transport override (tests use httpx.MockTransport)
            sleep: Awaitable used for backoff waits
        """
        self.config = config
        self.auth = auth
        self.monitor = ApiMonitor()
        self.on_metric = on_metric if on_metric is not None else self.monitor.record
        self._sleep = sleep
        # Deadlines are enforced per attempt below, not by httpx.
        self._client = httpx.AsyncClient(transport=transport, timeout=None)

    async def __aenter__(self) -> "ResilientClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def backoff_delay(self, attempt: int) -> float:
        """Seconds to wait after the given 0-based attempt fails."""
        delay = self.config.retry_delay * (self.config.backoff_multiplier ** attempt)
        return min(delay, self.config.max_delay)

    def resolve_url(self, url: str) -> str:
        if url.startswith(("http://", "https://")):
            return url
        return self.config.base_url.rstrip("/") + "/" + url.lstrip("/")

    async def request(
        self,
        method: str,
        url: str,
        body: Any = None,
        headers: Optional[dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> HTTPResponse:
        """Execute a request, retrying transient failures.

        Raises:
            APIError: the first non-retryable error, or the last error once
                the attempt budget is spent
        """
        attempts = max(self.config.retry_attempts, 1)
        full_url = self.resolve_url(url)

        attempt = 0
        while True:
            attempt += 1
            try:
                return await self._attempt(method, full_url, body, headers, timeout, attempt)
            except APIError as e:
                if not e.retryable:
                    raise
                if attempt >= attempts:
                    logger.warning(f"[HTTP] {method} {full_url} failed after {attempts} attempts: {e}")
                    raise
                delay = self.backoff_delay(attempt - 1)
                logger.warning(
                    f"[HTTP] {method} {full_url} failed (attempt {attempt}/{attempts}), "
                    f"retrying in {delay:.1f}s: {e}"
                )
                await self._sleep(delay)

    async def _attempt(
        self,
        method: str,
        url: str,
        body: Any,
        headers: Optional[dict[str, str]],
        timeout: Optional[float],
        attempt: int,
    ) -> HTTPResponse:
        request_headers = {"Content-Type": "application/json", "Accept": "application/json"}
        request_headers.update(headers or {})
        if self.auth is not None:
            auth_value = authorization_header(self.auth.get_token())
            if auth_value:
                request_headers["Authorization"] = auth_value

        deadline = timeout if timeout is not None else self.config.timeout
        endpoint = httpx.URL(url).path
        started = time.monotonic()

        try:
            response = await asyncio.wait_for(
                self._client.request(method, url, json=body, headers=request_headers),
                timeout=deadline,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            error = RequestTimeoutError(f"Request timeout after {deadline:g}s")
            self._emit(endpoint, method, TIMEOUT_METRIC_STATUS, started, error.message, attempt)
            raise error from None
        except httpx.TransportError as e:
            error = NetworkError(f"Network error: {e}")
            self._emit(endpoint, method, 0, started, error.message, attempt)
            raise error from e

        data = parse_body(response)
        if not response.is_success:
            error = error_from_response(
                response.status_code, response.reason_phrase, data, response.headers
            )
            self._emit(endpoint, method, response.status_code, started, error.message, attempt)
            raise error

        self._emit(endpoint, method, response.status_code, started, None, attempt)
        return HTTPResponse(
            data=data,
            status=response.status_code,
            status_text=response.reason_phrase,
            headers=dict(response.headers),
        )

    def _emit(
        self,
        endpoint: str,
        method: str,
        status: int,
        started: float,
        error: Optional[str],
        attempt: int,
    ) -> None:
        if self.on_metric is None:
            return
        metric = RequestAttemptMetric(
            endpoint=endpoint,
            method=method,
            status=status,
            duration=time.monotonic() - started,
            error=error,
            attempt=attempt,
        )
        try:
            self.on_metric(metric)
        except Exception as e:
            logger.warning(f"[HTTP] Metric callback failed: {e}")

    async def get(self, url: str, headers: Optional[dict[str, str]] = None) -> HTTPResponse:
        return await self.request("GET", url, headers=headers)

    async def post(self, url: str, body: Any = None, headers: Optional[dict[str, str]] = None) -> HTTPResponse:
        return await self.request("POST", url, body, headers)

    async def put(self, url: str, body: Any = None, headers: Optional[dict[str, str]] = None) -> HTTPResponse:
        return await self.request("PUT", url, body, headers)

    async def patch(self, url: str, body: Any = None, headers: Optional[dict[str, str]] = None) -> HTTPResponse:
        return await self.request("PATCH", url, body, headers)

    async def delete(self, url: str, headers: Optional[dict[str, str]] = None) -> HTTPResponse:
        return await self.request("DELETE", url, headers=headers)

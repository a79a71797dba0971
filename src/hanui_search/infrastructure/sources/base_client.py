"""
Base API Client - Common HTTP request pattern with retry, rate limiting, and circuit breaker.

Every source adapter talks to its backend through this class:
- httpx.AsyncClient management (injectable for tests)
- Rate limiting (configurable interval between requests)
- Retry on 429 / 5xx / connection errors with exponential backoff
- Circuit breaker for fault tolerance
- Typed errors instead of silent None, so the orchestrator can tell a
  failed backend from a backend with no results
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from typing import Any

import httpx
from typing_extensions import Self

from hanui_search.shared.async_utils import CircuitBreaker
from hanui_search.shared.exceptions import (
    HanuiSearchError,
    NetworkError,
    ParseError,
    RateLimitError,
    ServiceUnavailableError,
    get_retry_delay,
    is_retryable_error,
)

# Query parameters never written to logs
_SECRET_PARAMS = frozenset({"api_key", "key", "serviceKey"})


def _logger_suffix(service_name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", service_name.lower()).strip("_")


class BaseAPIClient:
    """
    Base class for external API clients.

    Subclasses set ``_service_name`` and can override:
    - ``_handle_expected_status()``: statuses a backend documents as "no results"
    - ``_parse_response()``: custom body extraction

    Raises from ``_make_request``:
        RateLimitError: 429 after retries, or circuit breaker open
        ServiceUnavailableError: 5xx after retries
        NetworkError: connection failure, timeout, or other HTTP error status
        ParseError: body could not be decoded as JSON
    """

    _service_name: str = "API"
    _MAX_RETRIES: int = 2
    _MAX_RETRY_WAIT: float = 5.0

    def __init__(
        self,
        base_url: str = "",
        timeout: float = 15.0,
        min_interval: float = 0.1,
        headers: dict[str, str] | None = None,
        circuit_breaker: CircuitBreaker | None = None,
        http_client: httpx.AsyncClient | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        """
        Initialize base client.

        Args:
            base_url: Base URL for the API (optional, can pass full URLs)
            timeout: Default request timeout in seconds
            min_interval: Minimum seconds between requests (rate limiting)
            headers: Default headers for all requests
            circuit_breaker: Optional circuit breaker. If None, a default one is
                             created (threshold=10, recovery=60s).
            http_client: Pre-built client (tests pass one with a MockTransport)
            logger: Injected log sink; defaults to ``hanui_search.sources.<service>``
        """
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._min_interval = min_interval
        self._last_request_time = 0.0
        self._headers = dict(headers or {})
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=self._timeout,
            follow_redirects=True,
            limits=httpx.Limits(
                max_connections=20,
                max_keepalive_connections=10,
                keepalive_expiry=30.0,
            ),
        )
        self._circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=10, recovery_timeout=60.0, source=self._service_name
        )
        self.logger = logger or logging.getLogger(f"hanui_search.sources.{_logger_suffix(self._service_name)}")

    async def _rate_limit(self) -> None:
        """Enforce minimum interval between requests."""
        elapsed = time.monotonic() - self._last_request_time
        if elapsed < self._min_interval:
            await asyncio.sleep(self._min_interval - elapsed)
        self._last_request_time = time.monotonic()

    def _build_url(self, url: str) -> str:
        """Build full URL from path or full URL."""
        if url.startswith(("http://", "https://")):
            return url
        return f"{self._base_url}{url}"

    @staticmethod
    def _loggable(url: str, params: dict[str, Any] | None) -> str:
        """URL plus params with secrets masked."""
        if not params:
            return url
        shown = {k: ("***" if k in _SECRET_PARAMS else v) for k, v in params.items()}
        return f"{url} {shown}"

    async def _make_request(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        expect_json: bool = True,
        timeout: float | None = None,
    ) -> Any:
        """
        Make an HTTP GET with retry and circuit breaker protection.

        Args:
            url: Full URL or path (appended to base_url)
            params: Query parameters
            headers: Additional headers for this request
            expect_json: If True, parse response as JSON; otherwise return text
            timeout: Per-request timeout overriding the client default

        Returns:
            Parsed JSON, response text, or whatever ``_handle_expected_status`` returns
        """
        full_url = self._build_url(url)
        self.logger.debug(f"{self._service_name} GET {self._loggable(full_url, params)}")

        for attempt in range(self._MAX_RETRIES + 1):
            await self._rate_limit()
            try:
                async with self._circuit_breaker:
                    response = await self._execute_request(full_url, params=params, headers=headers, timeout=timeout)
                    return self._process_response(response, expect_json)

            except HanuiSearchError as e:
                # 429, 5xx and backend faults are retryable; client errors and bad bodies are not
                if not is_retryable_error(e) or attempt >= self._MAX_RETRIES or self._circuit_breaker.is_open:
                    raise
                wait = min(get_retry_delay(e, attempt), self._MAX_RETRY_WAIT)
                self.logger.warning(
                    f"{self._service_name}: {e} (retry {attempt + 1}/{self._MAX_RETRIES} in {wait:.1f}s)"
                )
                await asyncio.sleep(wait)
            except httpx.TimeoutException as e:
                msg = f"{self._service_name} request timed out: {e!r}"
                raise NetworkError(msg) from e
            except httpx.RequestError as e:
                if attempt >= self._MAX_RETRIES:
                    msg = f"{self._service_name} request failed: {e!r}"
                    raise NetworkError(msg) from e
                wait = min(2.0 ** attempt, self._MAX_RETRY_WAIT)
                self.logger.warning(f"{self._service_name} request error (attempt {attempt + 1}): {e!r}")
                await asyncio.sleep(wait)

        msg = f"{self._service_name}: retry loop exhausted"
        raise NetworkError(msg)

    async def _execute_request(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        """Execute the actual HTTP request. Override for custom behavior."""
        merged = {**self._headers, **(headers or {})}
        return await self._client.get(
            url,
            params=params,
            headers=merged,
            timeout=self._timeout if timeout is None else timeout,
        )

    def _process_response(self, response: httpx.Response, expect_json: bool) -> Any:
        expected = self._handle_expected_status(response)
        if expected is not _CONTINUE:
            return expected

        status = response.status_code
        if status == 429:
            retry_after = self._get_retry_after(response)
            raise RateLimitError(f"{self._service_name}: rate limited (429)", retry_after=retry_after)
        if status >= 500:
            raise ServiceUnavailableError(f"HTTP {status}", service=self._service_name)
        if status >= 400:
            msg = f"{self._service_name} HTTP {status}: {response.reason_phrase}"
            raise NetworkError(msg, retryable=False)

        return self._parse_response(response, expect_json)

    def _handle_expected_status(self, response: httpx.Response) -> Any:
        """
        Handle non-200 statuses a backend documents as "no results".

        Return a value to short-circuit (e.g. an empty payload for 404), or the
        sentinel ``_CONTINUE`` to continue normal processing. The body of a
        short-circuited response is never awaited.
        """
        return _CONTINUE

    def _parse_response(self, response: httpx.Response, expect_json: bool) -> Any:
        """Parse response body. Override for custom extraction logic."""
        if not expect_json:
            return response.text
        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ParseError("Invalid JSON response", source=self._service_name) from e

    @staticmethod
    def _get_retry_after(response: httpx.Response) -> float:
        """Extract Retry-After from response headers."""
        try:
            return float(response.headers.get("Retry-After", 1.0))
        except (ValueError, TypeError):
            return 1.0

    async def close(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()


# Sentinel object to indicate "continue normal processing" from _handle_expected_status
_CONTINUE = object()


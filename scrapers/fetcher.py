"""Throttled JSON GETs with retry on rate limits and upstream failures."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

import httpx

from scrapers.backoff import DEFAULT_MAX_DELAY_MS, FetchError, with_retry

log = logging.getLogger(__name__)


def parse_retry_after(value: str | None) -> float | None:
    """Retry-After header -> milliseconds, or None when absent/unusable."""
    if not value:
        return None
    value = value.strip()
    try:
        seconds = float(value)
    except ValueError:
        try:
            when = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        seconds = (when - datetime.now(timezone.utc)).total_seconds()
    if seconds <= 0:
        return None
    return seconds * 1000


def classify_response(response: httpx.Response) -> None:
    """Raise a tagged ``FetchError`` for any non-2xx response."""
    status = response.status_code
    url = str(response.request.url)
    if status == 429:
        raise FetchError(
            f"Rate limited: {url}",
            retryable=True,
            retry_after_ms=parse_retry_after(response.headers.get("retry-after")),
            status_code=status,
            url=url,
        )
    if status >= 500:
        raise FetchError(
            f"Upstream server error {status}: {url}",
            retryable=True,
            status_code=status,
            url=url,
        )
    if not response.is_success:
        raise FetchError(
            f"Request failed {status}: {url}",
            retryable=False,
            status_code=status,
            url=url,
        )


class ResilientFetcher:
    """One logical GET per call, retried per the backoff policy.

    Every successful fetch is followed by a fixed ``request_delay_ms`` pause
    so that sequential callers stay under the upstream rate limit.
    """

    def __init__(
        self,
        *,
        user_agent: str,
        request_delay_ms: float,
        max_attempts: int,
        base_delay_ms: float,
        max_delay_ms: float = DEFAULT_MAX_DELAY_MS,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if not 1 <= max_attempts <= 10:
            raise ValueError(f"max_attempts must be between 1 and 10, got {max_attempts}")
        if base_delay_ms <= 0:
            raise ValueError(f"base_delay_ms must be positive, got {base_delay_ms}")
        if request_delay_ms < 0:
            raise ValueError(f"request_delay_ms must not be negative, got {request_delay_ms}")

        self._request_delay_ms = request_delay_ms
        self._max_attempts = max_attempts
        self._base_delay_ms = base_delay_ms
        self._max_delay_ms = max_delay_ms
        self._sleep = sleep
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            follow_redirects=True,
            timeout=timeout,
        )
        self._headers = {"User-Agent": user_agent, "Accept": "application/json"}

    async def __aenter__(self) -> ResilientFetcher:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def fetch_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        async def attempt_once(attempt: int) -> Any:
            try:
                response = await self._client.get(url, params=params, headers=self._headers)
            except httpx.TransportError as exc:
                raise FetchError(
                    f"Transport error on attempt {attempt}: {url}: {exc!r}",
                    retryable=True,
                    url=url,
                ) from exc

            classify_response(response)
            try:
                return response.json()
            except ValueError as exc:
                raise FetchError(
                    f"Invalid JSON body: {url}",
                    retryable=False,
                    status_code=response.status_code,
                    url=url,
                ) from exc

        data = await with_retry(
            attempt_once,
            max_attempts=self._max_attempts,
            base_delay_ms=self._base_delay_ms,
            max_delay_ms=self._max_delay_ms,
            sleep=self._sleep,
        )
        await self._sleep(self._request_delay_ms / 1000)
        return data
